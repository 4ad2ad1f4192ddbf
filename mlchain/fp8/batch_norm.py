# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Tuple

import numpy as np

from ..protocol.types.operations import batch_norm_flops, require_positive
from .minifloat import add, decode, div, encode, mul, mul_add, sub, zeros
from .tensor import derive_seed, generate_random_tensor, hash_tensor

logger = logging.getLogger(__name__)


def batch_norm(inputs: np.ndarray, gamma: np.ndarray, beta: np.ndarray, epsilon: float) -> np.ndarray:
    """
    FP8 batch normalization of inputs (b, c, h, w) with per-channel gamma/beta.

    Channels are processed side by side but each runs three passes in order:
    mean, then variance, then normalize. Within a channel the sums visit
    positions in (batch, height, width) row-major order.
    """
    b, c, h, w = inputs.shape
    count = b * h * w
    per_channel = inputs.transpose(1, 0, 2, 3).reshape(c, count)
    n = np.float32(count)

    total = zeros(c)
    for i in range(count):
        total = add(total, per_channel[:, i])
    mean = encode(decode(total) / n)

    sq_total = zeros(c)
    for i in range(count):
        diff = sub(per_channel[:, i], mean)
        sq_total = mul_add(sq_total, diff, diff)
    variance = encode(decode(sq_total) / n)
    std = encode(np.sqrt(decode(variance) + np.float32(epsilon)))

    normalized = div(sub(per_channel, mean[:, None]), std[:, None])
    output = add(mul(normalized, gamma[:, None]), beta[:, None])

    return output.reshape(c, b, h, w).transpose(1, 0, 2, 3)


def execute_batch_norm(shape: Tuple[int, int, int, int], epsilon: float, seed: int) -> Tuple[str, int]:
    """
    Batch norm over an input from `seed`, gamma from `seed + 1`, beta from `seed + 2`.

    Returns:
        (result_hash, flops)
    """
    require_positive("shape", shape)
    channels = shape[1]

    inputs = generate_random_tensor(shape, seed)
    gamma = generate_random_tensor((channels,), derive_seed(seed, 1))
    beta = generate_random_tensor((channels,), derive_seed(seed, 2))

    output = batch_norm(inputs, gamma, beta, epsilon)

    logger.debug(f"BatchNorm shape={tuple(shape)} eps={epsilon} done")
    return hash_tensor(output), batch_norm_flops(shape)
