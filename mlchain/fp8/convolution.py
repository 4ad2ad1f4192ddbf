# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Tuple

import numpy as np

from ..protocol.types.operations import conv2d_flops, conv2d_output_size
from .minifloat import mul_add, zeros
from .tensor import derive_seed, generate_random_tensor, hash_tensor

logger = logging.getLogger(__name__)


def conv2d(
    inputs: np.ndarray,
    kernel: np.ndarray,
    stride: Tuple[int, int],
    padding: Tuple[int, int],
) -> np.ndarray:
    """
    FP8 2-D convolution of inputs (b, c, h, w) with kernel (oc, c, kh, kw).

    Output element (n, o, y, x) accumulates over (ic, ky, kx) in that nesting
    order. The contributing input pixel is (y*sh + ky - ph, x*sw + kx - pw);
    when it lies outside [0, h) x [0, w) the term is skipped (zero padding) and
    the accumulator is left untouched.
    """
    b, c, h, w = inputs.shape
    oc, ic, kh, kw = kernel.shape
    sh, sw = stride
    ph, pw = padding
    oh, ow = conv2d_output_size(inputs.shape, kernel.shape, stride, padding)

    out_y = np.arange(oh) * sh
    out_x = np.arange(ow) * sw
    acc = zeros((b, oc, oh, ow))

    for ci in range(ic):
        plane = inputs[:, ci]                                   # (b, h, w)
        for ky in range(kh):
            in_y = out_y + ky - ph
            valid_y = (in_y >= 0) & (in_y < h)
            if not valid_y.any():
                continue
            rows = plane[:, np.clip(in_y, 0, h - 1), :]         # (b, oh, w)
            for kx in range(kw):
                in_x = out_x + kx - pw
                valid_x = (in_x >= 0) & (in_x < w)
                if not valid_x.any():
                    continue
                patch = rows[:, :, np.clip(in_x, 0, w - 1)]     # (b, oh, ow)
                weights = kernel[:, ci, ky, kx]                 # (oc,)

                updated = mul_add(acc, patch[:, None, :, :], weights[None, :, None, None])
                inside = valid_y[:, None] & valid_x[None, :]    # (oh, ow)
                acc = np.where(inside, updated, acc)
    return acc


def execute_conv2d(
    input_shape: Tuple[int, int, int, int],
    kernel_shape: Tuple[int, int, int, int],
    stride: Tuple[int, int],
    padding: Tuple[int, int],
    seed: int,
) -> Tuple[str, int]:
    """
    Convolution with input from `seed` and kernel from `seed + 1`.

    Returns:
        (result_hash, flops)
    """
    # Validates shapes before any tensor is generated
    flops = conv2d_flops(input_shape, kernel_shape, stride, padding)

    inputs = generate_random_tensor(input_shape, seed)
    kernel = generate_random_tensor(kernel_shape, derive_seed(seed, 1))
    output = conv2d(inputs, kernel, stride, padding)

    logger.debug(f"Conv2D input={tuple(input_shape)} kernel={tuple(kernel_shape)} -> {output.shape}")
    return hash_tensor(output), flops
