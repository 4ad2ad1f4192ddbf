# MIT License
# Copyright (c) 2025 Hashborn

"""
FP8 Minifloat (E4M3 layout)

Bit layout: 1 sign bit, 4 exponent bits (bias 7), 3 mantissa bits.

    sign | exponent | mantissa
     [7] |  [6..3]  |  [2..0]

Conversion rules (shared by every executor, they decide the proof hashes):
- 0.0 encodes to the all-zero pattern.
- Encoding takes the float32 representation, rebiases its exponent
  (127 -> 7) clamped to [0, 15] and keeps the top 3 mantissa bits.
  There is no rounding, only truncation.
- Decoding maps exponent field 0 to 0.0 (no denormals).
- Arithmetic decodes both operands to float32, computes in float32 and
  encodes the result again. Nothing is accumulated in wider precision.

There is no infinity or NaN pattern: overflowing values clamp to exponent 15.

The array functions work elementwise on numpy uint8 arrays so the kernels can
run whole output planes at once while keeping per-element semantics identical
to the scalar FP8 type.
"""

import numpy as np

EXPONENT_BIAS = 7
MAX_EXPONENT = 15
MANTISSA_BITS = 3

_F32_EXPONENT_BIAS = 127
_F32_MANTISSA_SHIFT = 23 - MANTISSA_BITS
_REBIAS = _F32_EXPONENT_BIAS - EXPONENT_BIAS

# Largest finite magnitude: exponent 15, mantissa 0b111
MAX_VALUE = 2.0 ** (MAX_EXPONENT - EXPONENT_BIAS) * 1.875
# Smallest magnitude that survives decoding: exponent 1, mantissa 0
MIN_NORMAL = 2.0 ** (1 - EXPONENT_BIAS)


def encode(values) -> np.ndarray:
    """Converts float values (scalar or array) to FP8 bit patterns (uint8)."""
    x = np.asarray(values, dtype=np.float32)
    bits = x.view(np.uint32)

    sign = (bits >> 31).astype(np.uint8)
    exponent = ((bits >> 23) & 0xFF).astype(np.int32) - _REBIAS
    exponent = np.clip(exponent, 0, MAX_EXPONENT).astype(np.uint8)
    mantissa = ((bits >> _F32_MANTISSA_SHIFT) & 0x7).astype(np.uint8)

    packed = (sign << 7) | (exponent << MANTISSA_BITS) | mantissa
    return np.where(x == 0.0, np.uint8(0), packed).astype(np.uint8)


def decode(patterns) -> np.ndarray:
    """Converts FP8 bit patterns to float32 values."""
    b = np.asarray(patterns, dtype=np.uint8).astype(np.uint32)

    sign = b >> 7
    exponent = (b >> MANTISSA_BITS) & 0xF
    mantissa = b & 0x7

    f32_bits = (sign << 31) | ((exponent + _REBIAS) << 23) | (mantissa << _F32_MANTISSA_SHIFT)
    values = f32_bits.astype(np.uint32).view(np.float32)
    # Exponent field 0 (including the all-zero pattern) carries no magnitude
    return np.where(exponent == 0, np.float32(0.0), values)


def quantize(values) -> np.ndarray:
    """Rounds float values through FP8 and back."""
    return decode(encode(values))


def add(a, b) -> np.ndarray:
    return encode(decode(a) + decode(b))


def sub(a, b) -> np.ndarray:
    return encode(decode(a) - decode(b))


def mul(a, b) -> np.ndarray:
    return encode(decode(a) * decode(b))


def div(a, b) -> np.ndarray:
    # A zero divisor yields inf/nan in float32, which encode clamps to exponent 15
    with np.errstate(divide="ignore", invalid="ignore"):
        return encode(decode(a) / decode(b))


def mul_add(acc, a, b) -> np.ndarray:
    """acc + a * b with both steps re-quantized (not fused)."""
    return add(acc, mul(a, b))


def zeros(shape) -> np.ndarray:
    return np.zeros(shape, dtype=np.uint8)


class FP8:
    """Immutable scalar FP8 value."""

    __slots__ = ("_bits",)

    def __init__(self, bits: int = 0):
        object.__setattr__(self, "_bits", int(bits) & 0xFF)

    def __setattr__(self, name, value):
        raise AttributeError("FP8 values are immutable")

    @classmethod
    def from_bits(cls, bits: int) -> "FP8":
        return cls(bits)

    @classmethod
    def from_float(cls, value: float) -> "FP8":
        return cls(int(encode(value)))

    @classmethod
    def zero(cls) -> "FP8":
        return cls(0)

    @classmethod
    def one(cls) -> "FP8":
        return cls.from_float(1.0)

    def to_bits(self) -> int:
        return self._bits

    def to_float(self) -> float:
        return float(decode(self._bits))

    def __float__(self) -> float:
        return self.to_float()

    def _binary(self, other: "FP8", op) -> "FP8":
        if not isinstance(other, FP8):
            return NotImplemented
        return FP8(int(op(self._bits, other._bits)))

    def __add__(self, other):
        return self._binary(other, add)

    def __sub__(self, other):
        return self._binary(other, sub)

    def __mul__(self, other):
        return self._binary(other, mul)

    def __truediv__(self, other):
        return self._binary(other, div)

    def __eq__(self, other) -> bool:
        if not isinstance(other, FP8):
            return NotImplemented
        return self._bits == other._bits

    def __hash__(self) -> int:
        return hash(self._bits)

    def __repr__(self) -> str:
        return f"FP8(0x{self._bits:02x}={self.to_float()})"
