# MIT License
# Copyright (c) 2025 Hashborn

"""
ML Operation variants.

Each variant fully specifies one deterministic kernel invocation. Variants are
tagged with `kind` so a list of operations serializes as plain JSON and parses
back into the right model.

The module also owns the shape arithmetic and the closed-form FLOP counts,
which are protocol facts: the kernels, the orchestrator and the difficulty
sizing all read them from here.
"""

from typing import Annotated, Any, Dict, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .common import OperationKind, ShapeError, ValidationError

U64_MAX = (1 << 64) - 1

Seed = Annotated[int, Field(ge=0, le=U64_MAX)]
Dim = Annotated[int, Field(ge=0)]


def require_positive(name: str, dims) -> None:
    if any(d <= 0 for d in dims):
        raise ShapeError(f"{name} must have only positive dimensions, got {tuple(dims)}")


# --- Shape arithmetic & FLOP counts ---

def gemm_flops(m: int, k: int, n: int) -> int:
    return 2 * m * k * n


def conv2d_output_size(
    input_shape: Tuple[int, int, int, int],
    kernel_shape: Tuple[int, int, int, int],
    stride: Tuple[int, int],
    padding: Tuple[int, int],
) -> Tuple[int, int]:
    """
    Output spatial size (oh, ow) of a 2-D convolution.

    Raises:
        ShapeError: zero-sized dimension or stride, channel mismatch, or a
            kernel that does not fit inside the padded input
    """
    b, c, h, w = input_shape
    oc, ic, kh, kw = kernel_shape
    sh, sw = stride
    ph, pw = padding

    require_positive("input_shape", input_shape)
    require_positive("kernel_shape", kernel_shape)
    require_positive("stride", stride)
    if ph < 0 or pw < 0:
        raise ShapeError(f"padding must be non-negative, got {tuple(padding)}")
    if ic != c:
        raise ShapeError(f"kernel expects {ic} input channels, input has {c}")

    padded_h = h + 2 * ph
    padded_w = w + 2 * pw
    if kh > padded_h or kw > padded_w:
        raise ShapeError(f"kernel {kh}x{kw} does not fit padded input {padded_h}x{padded_w}")

    oh = (padded_h - kh) // sh + 1
    ow = (padded_w - kw) // sw + 1
    return oh, ow


def conv2d_flops(input_shape, kernel_shape, stride, padding) -> int:
    b = input_shape[0]
    oc, ic, kh, kw = kernel_shape
    oh, ow = conv2d_output_size(input_shape, kernel_shape, stride, padding)
    return 2 * b * oc * ic * kh * kw * oh * ow


def attention_head_dim(d_model: int, num_heads: int) -> int:
    if num_heads <= 0 or d_model <= 0:
        raise ShapeError(f"d_model and num_heads must be positive, got {d_model}, {num_heads}")
    if d_model % num_heads != 0:
        raise ShapeError(f"d_model {d_model} is not divisible by num_heads {num_heads}")
    return d_model // num_heads


def attention_flops(batch: int, seq_len: int, d_model: int, num_heads: int) -> int:
    d_k = attention_head_dim(d_model, num_heads)
    qkv = 3 * batch * seq_len * d_model * d_model
    scores = 2 * batch * num_heads * seq_len * seq_len * d_k
    output = batch * seq_len * d_model * d_model
    return qkv + scores + output


def batch_norm_flops(shape: Tuple[int, int, int, int]) -> int:
    # mean: N, variance: 2N, normalize + scale/shift: 3N per channel
    b, c, h, w = shape
    return c * 6 * b * h * w


# --- Operation variants ---

class MatrixMultiply(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["matrix_multiply"] = "matrix_multiply"
    dims: Tuple[Dim, Dim, Dim]          # (m, k, n)
    seed: Seed

    def validate_shape(self):
        require_positive("dims", self.dims)

    def flops(self) -> int:
        return gemm_flops(*self.dims)

    def __str__(self) -> str:
        m, k, n = self.dims
        return f"GEMM {m}x{k}x{n}"


class Convolution2D(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["convolution_2d"] = "convolution_2d"
    input_shape: Tuple[Dim, Dim, Dim, Dim]    # (batch, channels, height, width)
    kernel_shape: Tuple[Dim, Dim, Dim, Dim]   # (out_channels, in_channels, kh, kw)
    stride: Tuple[Dim, Dim] = (1, 1)
    padding: Tuple[Dim, Dim] = (0, 0)
    seed: Seed

    def output_size(self) -> Tuple[int, int]:
        return conv2d_output_size(self.input_shape, self.kernel_shape, self.stride, self.padding)

    def validate_shape(self):
        self.output_size()

    def flops(self) -> int:
        return conv2d_flops(self.input_shape, self.kernel_shape, self.stride, self.padding)

    def __str__(self) -> str:
        oc, ic, kh, kw = self.kernel_shape
        return f"Conv2D {oc}x{ic}x{kh}x{kw}"


class MultiHeadAttention(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["multi_head_attention"] = "multi_head_attention"
    batch: Dim
    seq_len: Dim
    d_model: Dim
    num_heads: Dim
    seed: Seed

    def validate_shape(self):
        require_positive("batch/seq_len", (self.batch, self.seq_len))
        attention_head_dim(self.d_model, self.num_heads)

    def flops(self) -> int:
        return attention_flops(self.batch, self.seq_len, self.d_model, self.num_heads)

    def __str__(self) -> str:
        return f"Attention {self.num_heads}heads x {self.d_model}"


class BatchNormalization(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["batch_normalization"] = "batch_normalization"
    shape: Tuple[Dim, Dim, Dim, Dim]    # (batch, channels, height, width)
    epsilon: float = Field(default=1e-5, ge=0.0)
    seed: Seed

    def validate_shape(self):
        require_positive("shape", self.shape)

    def flops(self) -> int:
        return batch_norm_flops(self.shape)

    def __str__(self) -> str:
        b, c, h, w = self.shape
        return f"BatchNorm {b}x{c}x{h}x{w}"


MLOperation = Annotated[
    Union[MatrixMultiply, Convolution2D, MultiHeadAttention, BatchNormalization],
    Field(discriminator="kind"),
]

_operation_adapter = TypeAdapter(MLOperation)


def operation_kind(operation: MLOperation) -> OperationKind:
    return OperationKind(operation.kind)


def parse_operation(data: Union[str, bytes, Dict[str, Any]]) -> MLOperation:
    """Parses an operation from JSON text or a dict."""
    try:
        if isinstance(data, (str, bytes)):
            return _operation_adapter.validate_json(data)
        return _operation_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid MLOperation: {e}") from e
