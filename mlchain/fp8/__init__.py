# MIT License
# Copyright (c) 2025 Hashborn

"""
FP8 compute engine

Minifloat arithmetic, deterministic tensors and the four mining kernels
(GEMM, Conv2D, multi-head attention, batch norm) behind a pluggable executor.
"""

from .minifloat import FP8, decode, encode
from .tensor import derive_seed, generate_random_tensor, hash_tensor, quantize_and_hash
from .operations import ActivationType, apply_activation, softmax, stable_softmax
from .executor import (
    AcceleratedExecutor,
    KernelExecutor,
    PortableExecutor,
    calculate_flops_per_second,
    calculate_total_flops,
    execute_ml_operation,
    execute_work_unit,
    flops_to_teraflops,
    get_executor,
    teraflops_to_flops,
)

__all__ = [
    "FP8",
    "encode",
    "decode",
    "derive_seed",
    "generate_random_tensor",
    "hash_tensor",
    "quantize_and_hash",
    "ActivationType",
    "apply_activation",
    "softmax",
    "stable_softmax",
    "KernelExecutor",
    "PortableExecutor",
    "AcceleratedExecutor",
    "get_executor",
    "execute_ml_operation",
    "execute_work_unit",
    "calculate_total_flops",
    "calculate_flops_per_second",
    "flops_to_teraflops",
    "teraflops_to_flops",
]
