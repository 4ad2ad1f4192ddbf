# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class OperationKind(str, Enum):
    MATRIX_MULTIPLY = "matrix_multiply"
    CONVOLUTION_2D = "convolution_2d"
    MULTI_HEAD_ATTENTION = "multi_head_attention"
    BATCH_NORMALIZATION = "batch_normalization"


class AttemptOutcome(str, Enum):
    ACCEPTED = "accepted"       # Proof met the difficulty target
    REJECTED = "rejected"       # Work completed, proof below target
    FAILED = "failed"           # A kernel raised; nothing to submit


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    pass


class ComputationError(ProtocolError):
    pass


class ShapeError(ComputationError, ValidationError):
    """Shape arithmetic of an operation is undefined (kernel too large, zero stride, uneven head split)."""
    pass


class SerializationError(ProtocolError):
    pass


class NetworkError(ProtocolError):
    pass
