# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum

import numpy as np

from .minifloat import decode, encode

_GELU_COEFF = np.float32(0.7978845608)  # sqrt(2 / pi)
_GELU_CUBIC = np.float32(0.044715)


class ActivationType(str, Enum):
    RELU = "relu"
    GELU = "gelu"
    SWISH = "swish"


def stable_softmax(values: np.ndarray) -> np.ndarray:
    """
    Float32 softmax over the last axis.

    The row maximum is subtracted before exponentiating, and the row sum is
    accumulated left to right so every implementation adds in the same order.
    """
    values = np.asarray(values, dtype=np.float32)
    shifted = values - values.max(axis=-1, keepdims=True)
    exps = np.exp(shifted)

    total = np.zeros(exps.shape[:-1] + (1,), dtype=np.float32)
    for j in range(exps.shape[-1]):
        total = total + exps[..., j:j + 1]
    return exps / total


def softmax(scores: np.ndarray) -> np.ndarray:
    """Softmax of FP8 scores over the last axis, returned as FP8."""
    return encode(stable_softmax(decode(scores)))


def relu(x: np.ndarray) -> np.ndarray:
    return encode(np.maximum(decode(x), np.float32(0.0)))


def gelu(x: np.ndarray) -> np.ndarray:
    # tanh approximation
    v = decode(x)
    inner = _GELU_COEFF * (v + _GELU_CUBIC * v * v * v)
    return encode(np.float32(0.5) * v * (np.float32(1.0) + np.tanh(inner)))


def swish(x: np.ndarray) -> np.ndarray:
    v = decode(x)
    with np.errstate(over="ignore"):
        sigmoid = np.float32(1.0) / (np.float32(1.0) + np.exp(-v))
    return encode(v * sigmoid)


_ACTIVATIONS = {
    ActivationType.RELU: relu,
    ActivationType.GELU: gelu,
    ActivationType.SWISH: swish,
}


def apply_activation(tensor: np.ndarray, activation: ActivationType) -> np.ndarray:
    return _ACTIVATIONS[ActivationType(activation)](tensor)
