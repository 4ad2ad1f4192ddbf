import pytest

from mlchain.protocol.config.params import NetworkConfig
from mlchain.protocol.types.operations import (
    BatchNormalization,
    Convolution2D,
    MatrixMultiply,
    MultiHeadAttention,
)


@pytest.fixture
def small_operations():
    """One small operation of each kind, cheap enough for the portable kernels."""
    return [
        MatrixMultiply(dims=(8, 16, 8), seed=100),
        Convolution2D(
            input_shape=(1, 2, 6, 6),
            kernel_shape=(3, 2, 3, 3),
            stride=(1, 1),
            padding=(1, 1),
            seed=101,
        ),
        MultiHeadAttention(batch=1, seq_len=4, d_model=8, num_heads=2, seed=102),
        BatchNormalization(shape=(2, 3, 4, 4), epsilon=1e-5, seed=103),
    ]


@pytest.fixture
def test_config():
    return NetworkConfig(
        network_id="test",
        chain_id=31337,
        block_time_target=15,
        difficulty_adjustment_interval=3,
        initial_difficulty=1_000_000,
        max_adjustment_factor=2.0,
        rpc_url="http://node.test:8000",
        worker_threads=2,
    )
