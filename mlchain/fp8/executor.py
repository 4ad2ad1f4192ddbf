# MIT License
# Copyright (c) 2025 Hashborn

"""
Kernel executors.

An executor turns one MLOperation into (result_hash, flops). Two are
registered:

- portable: bit-exact FP8 arithmetic, the reference path every node can verify
- accelerated: float32 intermediates on BLAS, quantized once at the end

Both finish with the same quantize-and-hash code (mlchain.fp8.tensor), so a
proof built by either path is checked the same way. The operation kinds form
a closed set; dispatch happens in KernelExecutor.run only.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, Type

from ..protocol.types.common import ValidationError
from ..protocol.types.operations import (
    BatchNormalization,
    Convolution2D,
    MatrixMultiply,
    MLOperation,
    MultiHeadAttention,
)
from ..protocol.types.work import OperationResult
from . import accelerated
from .attention import execute_attention
from .batch_norm import execute_batch_norm
from .convolution import execute_conv2d
from .gemm import execute_gemm

logger = logging.getLogger(__name__)


class KernelExecutor(ABC):
    name = "abstract"

    @abstractmethod
    def gemm(self, dims, seed: int) -> Tuple[str, int]:
        pass

    @abstractmethod
    def conv2d(self, input_shape, kernel_shape, stride, padding, seed: int) -> Tuple[str, int]:
        pass

    @abstractmethod
    def attention(self, batch: int, seq_len: int, d_model: int, num_heads: int, seed: int) -> Tuple[str, int]:
        pass

    @abstractmethod
    def batch_norm(self, shape, epsilon: float, seed: int) -> Tuple[str, int]:
        pass

    def run(self, operation: MLOperation) -> Tuple[str, int]:
        """Validates the operation's shapes and runs the matching kernel."""
        operation.validate_shape()

        if isinstance(operation, MatrixMultiply):
            return self.gemm(operation.dims, operation.seed)
        if isinstance(operation, Convolution2D):
            return self.conv2d(
                operation.input_shape,
                operation.kernel_shape,
                operation.stride,
                operation.padding,
                operation.seed,
            )
        if isinstance(operation, MultiHeadAttention):
            return self.attention(
                operation.batch,
                operation.seq_len,
                operation.d_model,
                operation.num_heads,
                operation.seed,
            )
        if isinstance(operation, BatchNormalization):
            return self.batch_norm(operation.shape, operation.epsilon, operation.seed)
        raise ValidationError(f"Unsupported operation: {operation!r}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class PortableExecutor(KernelExecutor):
    name = "portable"

    def gemm(self, dims, seed):
        return execute_gemm(dims, seed)

    def conv2d(self, input_shape, kernel_shape, stride, padding, seed):
        return execute_conv2d(input_shape, kernel_shape, stride, padding, seed)

    def attention(self, batch, seq_len, d_model, num_heads, seed):
        return execute_attention(batch, seq_len, d_model, num_heads, seed)

    def batch_norm(self, shape, epsilon, seed):
        return execute_batch_norm(shape, epsilon, seed)


class AcceleratedExecutor(KernelExecutor):
    name = "accelerated"

    def gemm(self, dims, seed):
        return accelerated.execute_gemm(dims, seed)

    def conv2d(self, input_shape, kernel_shape, stride, padding, seed):
        return accelerated.execute_conv2d(input_shape, kernel_shape, stride, padding, seed)

    def attention(self, batch, seq_len, d_model, num_heads, seed):
        return accelerated.execute_attention(batch, seq_len, d_model, num_heads, seed)

    def batch_norm(self, shape, epsilon, seed):
        return accelerated.execute_batch_norm(shape, epsilon, seed)


EXECUTORS: Dict[str, Type[KernelExecutor]] = {
    PortableExecutor.name: PortableExecutor,
    AcceleratedExecutor.name: AcceleratedExecutor,
}


def get_executor(name: str) -> KernelExecutor:
    if name not in EXECUTORS:
        raise ValidationError(f"Unknown backend: {name}. Available: {list(EXECUTORS.keys())}")
    return EXECUTORS[name]()


# --- Entry points ---

def execute_ml_operation(operation: MLOperation, executor: Optional[KernelExecutor] = None) -> OperationResult:
    """
    Execute a single ML operation and time it.

    Args:
        operation: Operation to run
        executor: Kernel executor (portable if omitted)

    Returns:
        OperationResult with the output hash, FLOP count and wall time

    Raises:
        ShapeError / ValidationError: invalid shape arithmetic
        ComputationError: kernel failure
    """
    executor = executor or PortableExecutor()
    start = time.perf_counter()
    result_hash, flops = executor.run(operation)
    elapsed_ms = int((time.perf_counter() - start) * 1000)

    logger.debug(f"{operation} [{executor.name}] -> {result_hash[:16]}... ({flops} FLOPs, {elapsed_ms} ms)")
    return OperationResult(result_hash=result_hash, flops=flops, execution_time_ms=elapsed_ms)


def execute_work_unit(
    operations: Sequence[MLOperation],
    executor: Optional[KernelExecutor] = None,
) -> List[OperationResult]:
    """Runs operations one after another, in order."""
    executor = executor or PortableExecutor()
    return [execute_ml_operation(op, executor) for op in operations]


# --- FLOP helpers ---

def calculate_total_flops(results: Sequence[OperationResult]) -> int:
    return sum(r.flops for r in results)


def calculate_flops_per_second(flops: int, duration_seconds: float) -> float:
    if duration_seconds <= 0:
        return 0.0
    return flops / duration_seconds


def flops_to_teraflops(flops: float) -> float:
    return flops / 1e12


def teraflops_to_flops(teraflops: float) -> float:
    return teraflops * 1e12
