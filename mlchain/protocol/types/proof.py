# MIT License
# Copyright (c) 2025 Hashborn

"""
Proof of useful work.

work_hash = SHA3-256("{nonce}:{h1,h2,...}:{total_flops}") hex-encoded.

Acceptance rule: the hex work_hash must start with at least
floor(log10(difficulty)) '0' characters. Every difficulty within one decade
requires the same number of zeros; this is the network-wide rule.
"""

from typing import List, Sequence

from pydantic import BaseModel, ConfigDict

from ..crypto.hash import sha3_256_hex


def leading_zero_count(work_hash: str) -> int:
    count = 0
    for ch in work_hash:
        if ch != "0":
            break
        count += 1
    return count


def required_leading_zeros(difficulty: int) -> int:
    """floor(log10(difficulty)), computed on integers; 0 for difficulty < 10."""
    if difficulty < 10:
        return 0
    return len(str(int(difficulty))) - 1


def compute_work_hash(nonce: int, operation_hashes: Sequence[str], total_flops: int) -> str:
    combined = f"{nonce}:{','.join(operation_hashes)}:{total_flops}"
    return sha3_256_hex(combined.encode("utf-8"))


class Proof(BaseModel):
    model_config = ConfigDict(frozen=True)

    nonce: int
    work_hash: str
    operation_hashes: List[str]     # declaration order of the work unit
    total_flops: int
    timestamp: int

    @classmethod
    def build(cls, nonce: int, operation_hashes: Sequence[str], total_flops: int, timestamp: int) -> "Proof":
        return cls(
            nonce=nonce,
            work_hash=compute_work_hash(nonce, operation_hashes, total_flops),
            operation_hashes=list(operation_hashes),
            total_flops=total_flops,
            timestamp=timestamp,
        )

    def is_consistent(self) -> bool:
        """True if work_hash matches the other fields."""
        return self.work_hash == compute_work_hash(self.nonce, self.operation_hashes, self.total_flops)

    def leading_zeros(self) -> int:
        return leading_zero_count(self.work_hash)

    def verify(self, difficulty: int) -> bool:
        return self.leading_zeros() >= required_leading_zeros(difficulty)
