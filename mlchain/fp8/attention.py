# MIT License
# Copyright (c) 2025 Hashborn

"""
FP8 multi-head attention.

Per batch and head:
1. Project the input through Wq/Wk/Wv, keeping the head's d_k columns
   (column offset h * d_k). This is a plain dot product with the weight
   columns, not a learned linear layer with bias.
2. score(i, j) = (Q[i] . K[j]) * (1 / sqrt(d_k))
3. Row softmax with max subtraction.
4. output(i) = sum_j weight(i, j) * V[j]

Q/K/V are fully computed before any score is taken.
"""

import logging
from typing import Tuple

import numpy as np

from ..protocol.types.operations import attention_flops, attention_head_dim, require_positive
from .gemm import fp8_matmul
from .minifloat import encode, mul
from .operations import softmax
from .tensor import derive_seed, generate_random_tensor, hash_tensor

logger = logging.getLogger(__name__)


def split_heads(t: np.ndarray, num_heads: int) -> np.ndarray:
    """(batch, seq, d_model) -> (batch, heads, seq, d_k)"""
    batch, seq_len, d_model = t.shape
    d_k = d_model // num_heads
    return t.reshape(batch, seq_len, num_heads, d_k).transpose(0, 2, 1, 3)


def merge_heads(t: np.ndarray) -> np.ndarray:
    """(batch, heads, seq, d_k) -> (batch, seq, d_model)"""
    batch, heads, seq_len, d_k = t.shape
    return t.transpose(0, 2, 1, 3).reshape(batch, seq_len, heads * d_k)


def multi_head_attention(
    inputs: np.ndarray,
    wq: np.ndarray,
    wk: np.ndarray,
    wv: np.ndarray,
    num_heads: int,
) -> np.ndarray:
    d_model = inputs.shape[-1]
    d_k = attention_head_dim(d_model, num_heads)

    q = split_heads(fp8_matmul(inputs, wq), num_heads)
    k = split_heads(fp8_matmul(inputs, wk), num_heads)
    v = split_heads(fp8_matmul(inputs, wv), num_heads)

    scale = encode(np.float32(1.0) / np.sqrt(np.float32(d_k)))
    scores = mul(fp8_matmul(q, k.swapaxes(-1, -2)), scale)   # (batch, heads, seq, seq)
    weights = softmax(scores)

    return merge_heads(fp8_matmul(weights, v))


def execute_attention(
    batch: int,
    seq_len: int,
    d_model: int,
    num_heads: int,
    seed: int,
) -> Tuple[str, int]:
    """
    Attention over an input from `seed` with Wq/Wk/Wv from seed+1..seed+3.

    Returns:
        (result_hash, flops)
    """
    require_positive("batch/seq_len", (batch, seq_len))
    flops = attention_flops(batch, seq_len, d_model, num_heads)

    inputs = generate_random_tensor((batch, seq_len, d_model), seed)
    wq = generate_random_tensor((d_model, d_model), derive_seed(seed, 1))
    wk = generate_random_tensor((d_model, d_model), derive_seed(seed, 2))
    wv = generate_random_tensor((d_model, d_model), derive_seed(seed, 3))

    output = multi_head_attention(inputs, wq, wk, wv, num_heads)

    logger.debug(f"Attention b={batch} seq={seq_len} d_model={d_model} heads={num_heads} done")
    return hash_tensor(output), flops
