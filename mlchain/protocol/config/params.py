# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict
from ..types.common import ValidationError

# Protocol floor for difficulty; retargeting never goes below it
MIN_DIFFICULTY = 1000

# Difficulty units per teraflop
DIFFICULTY_PER_TERAFLOP = 1e6

BACKENDS = ("portable", "accelerated")

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 chain_id: int,
                 block_time_target: int,
                 difficulty_adjustment_interval: int,
                 initial_difficulty: int,
                 max_adjustment_factor: float,
                 rpc_url: str = "http://localhost:8000",
                 contract_address: str = "0x" + "0" * 40,
                 # Executor selection (see mlchain.fp8.executor)
                 backend: str = "portable",
                 worker_threads: int = 4):
        self.network_id = network_id
        self.chain_id = chain_id
        self.block_time_target = block_time_target
        self.difficulty_adjustment_interval = difficulty_adjustment_interval
        self.initial_difficulty = initial_difficulty
        self.max_adjustment_factor = max_adjustment_factor
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.backend = backend
        self.worker_threads = worker_threads
        self.validate()

    def validate(self):
        """Rejects parameters that would make retargeting divide by zero or oscillate."""
        if self.block_time_target <= 0:
            raise ValidationError(f"block_time_target must be positive, got {self.block_time_target}")
        if self.max_adjustment_factor <= 1:
            raise ValidationError(f"max_adjustment_factor must be greater than 1, got {self.max_adjustment_factor}")
        if self.difficulty_adjustment_interval <= 0:
            raise ValidationError(
                f"difficulty_adjustment_interval must be positive, got {self.difficulty_adjustment_interval}"
            )
        if self.initial_difficulty < MIN_DIFFICULTY:
            raise ValidationError(f"initial_difficulty must be at least {MIN_DIFFICULTY}, got {self.initial_difficulty}")
        if self.backend not in BACKENDS:
            raise ValidationError(f"Unknown backend: {self.backend}. Available: {list(BACKENDS)}")
        if self.worker_threads <= 0:
            raise ValidationError(f"worker_threads must be positive, got {self.worker_threads}")

    def __repr__(self) -> str:
        return f"NetworkConfig({self.network_id}, difficulty={self.initial_difficulty}, backend={self.backend})"

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        chain_id=1337,
        block_time_target=15,
        difficulty_adjustment_interval=100,
        initial_difficulty=1_000_000,   # 1.0 TFLOPS
        max_adjustment_factor=2.0,
        rpc_url="http://localhost:8000",
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        chain_id=11155111,
        block_time_target=15,
        difficulty_adjustment_interval=500,
        initial_difficulty=10_000_000,
        max_adjustment_factor=4.0,
        worker_threads=8,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        chain_id=1,
        block_time_target=60,
        difficulty_adjustment_interval=2016,
        initial_difficulty=100_000_000,
        max_adjustment_factor=4.0,
        backend="accelerated",
        worker_threads=16,
    ),
}

def get_network(name: str) -> NetworkConfig:
    if name not in NETWORKS:
        raise ValidationError(f"Unknown network: {name}. Available: {list(NETWORKS.keys())}")
    return NETWORKS[name]

# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
