# MIT License
# Copyright (c) 2025 Hashborn

"""
Deterministic FP8 tensor generation and the shared quantize-and-hash step.

A tensor is a numpy uint8 array of FP8 bit patterns in row-major order.
Its contents are fully determined by (shape, seed).
"""

import math
from typing import Sequence

import numpy as np

from ..protocol.crypto.hash import hash_operation_result
from ..protocol.types.common import ShapeError
from .minifloat import encode

U64_MASK = (1 << 64) - 1


def derive_seed(seed: int, offset: int) -> int:
    """seed + offset with u64 wrap-around (secondary tensors use seed+1, seed+2, ...)."""
    return (seed + offset) & U64_MASK


def element_count(shape: Sequence[int]) -> int:
    for dim in shape:
        if int(dim) < 0:
            raise ShapeError(f"Negative dimension in shape {tuple(shape)}")
    count = math.prod(int(d) for d in shape)
    if count > U64_MASK:
        raise ShapeError(f"Element count of shape {tuple(shape)} overflows u64")
    return count


def generate_random_tensor(shape: Sequence[int], seed: int) -> np.ndarray:
    """
    Generate a standard-normal FP8 tensor.

    One sample per element in row-major order, drawn from a PCG64 generator
    seeded with `seed`, cast to float32 and then quantized to FP8.

    Args:
        shape: Dimension sizes
        seed: Unsigned 64-bit seed

    Returns:
        uint8 array of FP8 patterns with the given shape
    """
    shape = tuple(int(d) for d in shape)
    count = element_count(shape)
    rng = np.random.default_rng(seed & U64_MASK)
    samples = rng.standard_normal(count).astype(np.float32)
    return encode(samples).reshape(shape)


def tensor_bytes(tensor: np.ndarray) -> bytes:
    return np.ascontiguousarray(tensor, dtype=np.uint8).tobytes(order="C")


def hash_tensor(tensor: np.ndarray) -> str:
    """Hash of FP8 patterns serialized row-major."""
    return hash_operation_result(tensor_bytes(tensor))


def quantize_and_hash(values: np.ndarray) -> str:
    """Final step of every executor: quantize float output to FP8, then hash."""
    return hash_tensor(encode(values))
