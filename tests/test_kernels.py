import numpy as np
import pytest

from mlchain.fp8.attention import execute_attention, multi_head_attention
from mlchain.fp8.batch_norm import batch_norm, execute_batch_norm
from mlchain.fp8.convolution import conv2d, execute_conv2d
from mlchain.fp8.gemm import execute_gemm, fp8_matmul
from mlchain.fp8.minifloat import FP8, decode, encode
from mlchain.fp8.tensor import generate_random_tensor, hash_tensor
from mlchain.protocol.types.common import ComputationError, ShapeError, ValidationError
from mlchain.protocol.types.operations import (
    BatchNormalization,
    Convolution2D,
    MatrixMultiply,
    MultiHeadAttention,
)


# --- Scalar references built on the FP8 value type ---

def reference_matmul(a, b):
    m, k = a.shape
    n = b.shape[1]
    out = np.zeros((m, n), dtype=np.uint8)
    for i in range(m):
        for j in range(n):
            acc = FP8.zero()
            for l in range(k):
                acc = acc + FP8(a[i, l]) * FP8(b[l, j])
            out[i, j] = acc.to_bits()
    return out


def reference_conv2d(inputs, kernel, stride, padding):
    b, c, h, w = inputs.shape
    oc, ic, kh, kw = kernel.shape
    sh, sw = stride
    ph, pw = padding
    oh = (h + 2 * ph - kh) // sh + 1
    ow = (w + 2 * pw - kw) // sw + 1
    out = np.zeros((b, oc, oh, ow), dtype=np.uint8)
    for n in range(b):
        for o in range(oc):
            for y in range(oh):
                for x in range(ow):
                    acc = FP8.zero()
                    for ci in range(ic):
                        for ky in range(kh):
                            for kx in range(kw):
                                iy = y * sh + ky - ph
                                ix = x * sw + kx - pw
                                if 0 <= iy < h and 0 <= ix < w:
                                    acc = acc + FP8(inputs[n, ci, iy, ix]) * FP8(kernel[o, ci, ky, kx])
                    out[n, o, y, x] = acc.to_bits()
    return out


def reference_batch_norm(inputs, gamma, beta, epsilon):
    b, c, h, w = inputs.shape
    count = np.float32(b * h * w)
    out = np.zeros_like(inputs)
    for ch in range(c):
        cells = [FP8(inputs[n, ch, y, x]) for n in range(b) for y in range(h) for x in range(w)]

        total = FP8.zero()
        for v in cells:
            total = total + v
        mean = FP8.from_float(np.float32(total.to_float()) / count)

        sq = FP8.zero()
        for v in cells:
            diff = v - mean
            sq = sq + diff * diff
        variance = FP8.from_float(np.float32(sq.to_float()) / count)
        std = FP8.from_float(np.sqrt(np.float32(variance.to_float()) + np.float32(epsilon)))

        g, bt = FP8(gamma[ch]), FP8(beta[ch])
        for n in range(b):
            for y in range(h):
                for x in range(w):
                    v = FP8(inputs[n, ch, y, x])
                    out[n, ch, y, x] = (((v - mean) / std) * g + bt).to_bits()
    return out



def reference_attention(inputs, wq, wk, wv, num_heads):
    batch, seq_len, d_model = inputs.shape
    d_k = d_model // num_heads
    scale = FP8.from_float(np.float32(1.0) / np.sqrt(np.float32(d_k)))
    out = np.zeros((batch, seq_len, d_model), dtype=np.uint8)

    def project(w, n, s, col):
        acc = FP8.zero()
        for k in range(d_model):
            acc = acc + FP8(inputs[n, s, k]) * FP8(w[k, col])
        return acc

    for n in range(batch):
        for h in range(num_heads):
            cols = [h * d_k + j for j in range(d_k)]
            q = [[project(wq, n, s, c) for c in cols] for s in range(seq_len)]
            k = [[project(wk, n, s, c) for c in cols] for s in range(seq_len)]
            v = [[project(wv, n, s, c) for c in cols] for s in range(seq_len)]

            for i in range(seq_len):
                scores = []
                for j in range(seq_len):
                    dot = FP8.zero()
                    for d in range(d_k):
                        dot = dot + q[i][d] * k[j][d]
                    scores.append(dot * scale)

                row = np.array([s.to_float() for s in scores], dtype=np.float32)
                exps = np.exp(row - row.max())
                total = np.float32(0.0)
                for e in exps:
                    total = np.float32(total + e)
                weights = [FP8.from_float(np.float32(e / total)) for e in exps]

                for d in range(d_k):
                    acc = FP8.zero()
                    for j in range(seq_len):
                        acc = acc + weights[j] * v[j][d]
                    out[n, i, cols[d]] = acc.to_bits()
    return out

# --- GEMM ---

def test_matmul_matches_sequential_reference():
    a = generate_random_tensor((5, 7), 1)
    b = generate_random_tensor((7, 4), 2)
    assert np.array_equal(fp8_matmul(a, b), reference_matmul(a, b))


def test_matmul_golden_hash():
    # 1*1 + 2*1 = 3, 1*0 + 2*1 = 2, 0.5 - 1 = -0.5, 0 - 1 = -1
    a = encode(np.array([[1.0, 2.0], [0.5, -1.0]], dtype=np.float32))
    b = encode(np.array([[1.0, 0.0], [1.0, 1.0]], dtype=np.float32))
    c = fp8_matmul(a, b)

    assert c.tolist() == [[0x44, 0x40], [0xB0, 0xB8]]
    assert hash_tensor(c) == "98842531a30dcf9d933711f40cbb6a41cd6cf44b8ba028fc1a0c0b96fdaf0545"


def test_matmul_identity():
    b = generate_random_tensor((3, 3), 5)
    identity = encode(np.eye(3, dtype=np.float32))
    assert np.array_equal(decode(fp8_matmul(identity, b)), decode(b))


def test_matmul_broadcasts_batches():
    a = generate_random_tensor((2, 3, 4), 1)
    b = generate_random_tensor((4, 5), 2)
    out = fp8_matmul(a, b)
    assert out.shape == (2, 3, 5)
    assert np.array_equal(out[1], fp8_matmul(a[1], b))


def test_matmul_rejects_mismatched_inner_dims():
    with pytest.raises(ShapeError):
        fp8_matmul(np.zeros((2, 3), np.uint8), np.zeros((4, 2), np.uint8))


def test_gemm_flops_and_determinism():
    assert MatrixMultiply(dims=(64, 64, 64), seed=0).flops() == 524288

    h1, flops = execute_gemm((64, 64, 64), 42)
    h2, _ = execute_gemm((64, 64, 64), 42)
    h3, _ = execute_gemm((64, 64, 64), 43)
    assert flops == 2 * 64 ** 3
    assert h1 == h2
    assert h1 != h3
    assert len(h1) == 64


def test_gemm_rejects_zero_dimension():
    with pytest.raises(ValidationError):
        execute_gemm((0, 4, 4), 1)


# --- Convolution ---

@pytest.mark.parametrize("stride,padding", [((1, 1), (0, 0)), ((1, 1), (1, 1)), ((2, 2), (1, 1)), ((2, 1), (2, 0))])
def test_conv2d_matches_reference(stride, padding):
    inputs = generate_random_tensor((2, 2, 5, 5), 10)
    kernel = generate_random_tensor((3, 2, 3, 3), 11)
    assert np.array_equal(conv2d(inputs, kernel, stride, padding), reference_conv2d(inputs, kernel, stride, padding))


def test_conv2d_zero_padding_at_boundaries():
    inputs = encode(np.ones((1, 1, 4, 4), dtype=np.float32))
    kernel = encode(np.ones((1, 1, 3, 3), dtype=np.float32))
    out = decode(conv2d(inputs, kernel, (1, 1), (1, 1)))[0, 0]

    assert out.shape == (4, 4)
    # corners see 4 pixels, edges 6, interior 9
    assert out[0, 0] == out[0, 3] == out[3, 0] == out[3, 3] == 4.0
    assert out[0, 1] == out[1, 0] == out[3, 2] == out[2, 3] == 6.0
    assert out[1, 1] == out[2, 2] == 9.0


def test_padding_larger_than_kernel_leaves_border_zero():
    inputs = encode(np.ones((1, 1, 2, 2), dtype=np.float32))
    kernel = encode(np.ones((1, 1, 1, 1), dtype=np.float32))
    out = decode(conv2d(inputs, kernel, (1, 1), (2, 2)))[0, 0]
    assert out.shape == (6, 6)
    assert out.sum() == 4.0
    assert np.array_equal(out[2:4, 2:4], np.ones((2, 2), dtype=np.float32))


def test_conv2d_output_size_and_flops():
    op = Convolution2D(input_shape=(1, 3, 32, 32), kernel_shape=(16, 3, 3, 3), seed=7)
    assert op.output_size() == (30, 30)
    assert op.flops() == 2 * 1 * 16 * 3 * 3 * 3 * 30 * 30

    result_hash, flops = execute_conv2d((1, 3, 32, 32), (16, 3, 3, 3), (1, 1), (0, 0), 7)
    assert flops == op.flops()
    assert result_hash == execute_conv2d((1, 3, 32, 32), (16, 3, 3, 3), (1, 1), (0, 0), 7)[0]


def test_conv2d_kernel_larger_than_input():
    op = Convolution2D(input_shape=(1, 1, 2, 2), kernel_shape=(1, 1, 5, 5), seed=1)
    with pytest.raises(ShapeError):
        op.validate_shape()
    # Catchable as either documented kind
    with pytest.raises(ComputationError):
        execute_conv2d((1, 1, 2, 2), (1, 1, 5, 5), (1, 1), (0, 0), 1)
    with pytest.raises(ValidationError):
        execute_conv2d((1, 1, 2, 2), (1, 1, 5, 5), (1, 1), (0, 0), 1)


def test_conv2d_invalid_parameters():
    with pytest.raises(ShapeError):
        Convolution2D(input_shape=(1, 1, 4, 4), kernel_shape=(1, 1, 3, 3), stride=(0, 1), seed=1).validate_shape()
    with pytest.raises(ShapeError):
        Convolution2D(input_shape=(1, 2, 4, 4), kernel_shape=(1, 3, 3, 3), seed=1).validate_shape()


# --- Attention ---

def test_attention_flops():
    op = MultiHeadAttention(batch=2, seq_len=4, d_model=8, num_heads=2, seed=0)
    assert op.flops() == 3 * 2 * 4 * 64 + 2 * 2 * 2 * 16 * 4 + 2 * 4 * 64


def test_attention_deterministic():
    h1, flops = execute_attention(2, 4, 8, 2, 99)
    h2, _ = execute_attention(2, 4, 8, 2, 99)
    assert h1 == h2
    assert flops == MultiHeadAttention(batch=2, seq_len=4, d_model=8, num_heads=2, seed=99).flops()


def test_attention_matches_per_head_reference():
    x = generate_random_tensor((2, 3, 8), 31)
    wq, wk, wv = (generate_random_tensor((8, 8), s) for s in (32, 33, 34))
    assert np.array_equal(multi_head_attention(x, wq, wk, wv, num_heads=2), reference_attention(x, wq, wk, wv, 2))


def test_attention_output_shape():
    x = generate_random_tensor((2, 5, 8), 1)
    w = [generate_random_tensor((8, 8), s) for s in (2, 3, 4)]
    assert multi_head_attention(x, *w, num_heads=4).shape == (2, 5, 8)


def test_attention_single_position_returns_value_projection():
    # With one key every softmax weight is 1, so output == V
    x = generate_random_tensor((1, 1, 4), 1)
    wq, wk, wv = (generate_random_tensor((4, 4), s) for s in (2, 3, 4))
    out = multi_head_attention(x, wq, wk, wv, num_heads=2)
    assert np.array_equal(decode(out), decode(fp8_matmul(x, wv)))


def test_attention_rejects_uneven_heads():
    with pytest.raises(ShapeError):
        execute_attention(1, 4, 10, 3, 1)
    with pytest.raises(ShapeError):
        MultiHeadAttention(batch=1, seq_len=4, d_model=8, num_heads=0, seed=1).validate_shape()


# --- Batch normalization ---

def test_batch_norm_matches_reference():
    inputs = generate_random_tensor((2, 3, 2, 3), 20)
    gamma = generate_random_tensor((3,), 21)
    beta = generate_random_tensor((3,), 22)
    assert np.array_equal(batch_norm(inputs, gamma, beta, 1e-5), reference_batch_norm(inputs, gamma, beta, 1e-5))


def test_batch_norm_flops_and_determinism():
    assert BatchNormalization(shape=(8, 128, 16, 16), seed=0).flops() == 6 * 8 * 16 * 16 * 128

    h1, flops = execute_batch_norm((2, 4, 3, 3), 1e-5, 5)
    h2, _ = execute_batch_norm((2, 4, 3, 3), 1e-5, 5)
    assert h1 == h2
    assert flops == 6 * 2 * 3 * 3 * 4


def test_batch_norm_constant_channel_with_zero_epsilon():
    # Zero variance and zero epsilon divide by zero; the result is still a valid tensor
    inputs = encode(np.full((1, 1, 2, 2), 2.0, dtype=np.float32))
    gamma = encode(np.ones(1, dtype=np.float32))
    beta = encode(np.zeros(1, dtype=np.float32))
    out = batch_norm(inputs, gamma, beta, 0.0)
    assert out.shape == (1, 1, 2, 2)
    assert np.isfinite(decode(out)).all()
