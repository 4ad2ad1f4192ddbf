# MIT License
# Copyright (c) 2025 Hashborn

"""
Float32 kernels for the accelerated executor.

Inputs are the same FP8 tensors the portable kernels generate, decoded once to
float32. Intermediates stay in float32 and go through BLAS/einsum, so hashes do
not match the portable kernels; the output is quantized to FP8 once at the end
through quantize_and_hash.
"""

import logging
from typing import Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..protocol.types.operations import (
    attention_flops,
    attention_head_dim,
    batch_norm_flops,
    conv2d_flops,
    gemm_flops,
    require_positive,
)
from .minifloat import decode
from .operations import stable_softmax
from .tensor import derive_seed, generate_random_tensor, quantize_and_hash

logger = logging.getLogger(__name__)


def _load(shape, seed: int) -> np.ndarray:
    return decode(generate_random_tensor(shape, seed))


# --- float32 kernels ---

def conv2d_f32(inputs: np.ndarray, kernel: np.ndarray, stride, padding) -> np.ndarray:
    sh, sw = stride
    ph, pw = padding
    kh, kw = kernel.shape[2], kernel.shape[3]

    padded = np.pad(inputs, ((0, 0), (0, 0), (ph, ph), (pw, pw)))
    # (b, c, oh, ow, kh, kw)
    windows = sliding_window_view(padded, (kh, kw), axis=(2, 3))[:, :, ::sh, ::sw]
    return np.einsum("bcyxij,ocij->boyx", windows, kernel, optimize=True)


def attention_f32(inputs: np.ndarray, wq: np.ndarray, wk: np.ndarray, wv: np.ndarray, num_heads: int) -> np.ndarray:
    batch, seq_len, d_model = inputs.shape
    d_k = attention_head_dim(d_model, num_heads)

    def heads(t):
        return t.reshape(batch, seq_len, num_heads, d_k).transpose(0, 2, 1, 3)

    q, k, v = heads(inputs @ wq), heads(inputs @ wk), heads(inputs @ wv)
    scale = np.float32(1.0) / np.sqrt(np.float32(d_k))
    weights = stable_softmax((q @ k.swapaxes(-1, -2)) * scale)
    return (weights @ v).transpose(0, 2, 1, 3).reshape(batch, seq_len, d_model)


def batch_norm_f32(inputs: np.ndarray, gamma: np.ndarray, beta: np.ndarray, epsilon: float) -> np.ndarray:
    channels = inputs.shape[1]
    gamma = gamma.reshape(1, channels, 1, 1)
    beta = beta.reshape(1, channels, 1, 1)

    mean = inputs.mean(axis=(0, 2, 3), keepdims=True, dtype=np.float32)
    variance = ((inputs - mean) ** 2).mean(axis=(0, 2, 3), keepdims=True, dtype=np.float32)
    std = np.sqrt(variance + np.float32(epsilon))
    with np.errstate(divide="ignore", invalid="ignore"):
        return (inputs - mean) / std * gamma + beta


# --- Executor entry points ---

def execute_gemm(dims: Tuple[int, int, int], seed: int) -> Tuple[str, int]:
    require_positive("dims", dims)
    m, k, n = dims
    a = _load((m, k), seed)
    b = _load((k, n), derive_seed(seed, 1))
    return quantize_and_hash(a @ b), gemm_flops(m, k, n)


def execute_conv2d(input_shape, kernel_shape, stride, padding, seed: int) -> Tuple[str, int]:
    flops = conv2d_flops(input_shape, kernel_shape, stride, padding)
    inputs = _load(input_shape, seed)
    kernel = _load(kernel_shape, derive_seed(seed, 1))
    return quantize_and_hash(conv2d_f32(inputs, kernel, stride, padding)), flops


def execute_attention(batch: int, seq_len: int, d_model: int, num_heads: int, seed: int) -> Tuple[str, int]:
    require_positive("batch/seq_len", (batch, seq_len))
    flops = attention_flops(batch, seq_len, d_model, num_heads)

    inputs = _load((batch, seq_len, d_model), seed)
    wq = _load((d_model, d_model), derive_seed(seed, 1))
    wk = _load((d_model, d_model), derive_seed(seed, 2))
    wv = _load((d_model, d_model), derive_seed(seed, 3))

    return quantize_and_hash(attention_f32(inputs, wq, wk, wv, num_heads)), flops


def execute_batch_norm(shape, epsilon: float, seed: int) -> Tuple[str, int]:
    require_positive("shape", shape)
    channels = shape[1]

    inputs = _load(shape, seed)
    gamma = _load((channels,), derive_seed(seed, 1))
    beta = _load((channels,), derive_seed(seed, 2))

    return quantize_and_hash(batch_norm_f32(inputs, gamma, beta, epsilon)), batch_norm_flops(shape)
