# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Tuple

import numpy as np

from ..protocol.types.common import ShapeError
from ..protocol.types.operations import gemm_flops, require_positive
from .minifloat import mul_add, zeros
from .tensor import derive_seed, generate_random_tensor, hash_tensor

logger = logging.getLogger(__name__)


def fp8_matmul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    FP8 matrix product a (..., m, k) @ b (..., k, n).

    Every output element is accumulated as acc = acc + a[i, l] * b[l, j] for
    l = 0..k-1 in ascending order, re-quantizing after each multiply and each
    add. All (i, j) pairs advance together, one l per step.
    """
    k = a.shape[-1]
    if b.shape[-2] != k:
        raise ShapeError(f"Inner dimensions differ: {a.shape} @ {b.shape}")

    batch_shape = np.broadcast_shapes(a.shape[:-2], b.shape[:-2])
    acc = zeros(batch_shape + (a.shape[-2], b.shape[-1]))
    for l in range(k):
        acc = mul_add(acc, a[..., :, l:l + 1], b[..., l:l + 1, :])
    return acc


def execute_gemm(dims: Tuple[int, int, int], seed: int) -> Tuple[str, int]:
    """
    C = A @ B with A (m x k) from `seed` and B (k x n) from `seed + 1`.

    Returns:
        (result_hash, flops)
    """
    require_positive("dims", dims)
    m, k, n = dims

    a = generate_random_tensor((m, k), seed)
    b = generate_random_tensor((k, n), derive_seed(seed, 1))
    c = fp8_matmul(a, b)

    logger.debug(f"GEMM {m}x{k}x{n} seed={seed} done")
    return hash_tensor(c), gemm_flops(m, k, n)
