import hashlib

import pytest

from mlchain.protocol.types.proof import (
    Proof,
    compute_work_hash,
    leading_zero_count,
    required_leading_zeros,
)

HASHES = ["aa" * 32, "bb" * 32, "cc" * 32]


def make_proof(work_hash: str) -> Proof:
    return Proof(nonce=1, work_hash=work_hash, operation_hashes=HASHES, total_flops=10, timestamp=0)


def test_work_hash_format():
    expected = hashlib.sha3_256(f"7:{','.join(HASHES)}:12345".encode()).hexdigest()
    assert compute_work_hash(7, HASHES, 12345) == expected


def test_build_is_consistent_and_order_sensitive():
    proof = Proof.build(nonce=7, operation_hashes=HASHES, total_flops=12345, timestamp=1700000000)
    assert proof.is_consistent()
    assert proof.work_hash == compute_work_hash(7, HASHES, 12345)

    reordered = Proof.build(nonce=7, operation_hashes=list(reversed(HASHES)), total_flops=12345, timestamp=0)
    assert reordered.work_hash != proof.work_hash


def test_timestamp_not_part_of_work_hash():
    a = Proof.build(nonce=1, operation_hashes=HASHES, total_flops=1, timestamp=1)
    b = Proof.build(nonce=1, operation_hashes=HASHES, total_flops=1, timestamp=2)
    assert a.work_hash == b.work_hash


def test_tampered_proof_is_inconsistent():
    proof = Proof.build(nonce=7, operation_hashes=HASHES, total_flops=12345, timestamp=0)
    tampered = proof.model_copy(update={"total_flops": 1})
    assert not tampered.is_consistent()


def test_leading_zero_count():
    assert leading_zero_count("000a0") == 3
    assert leading_zero_count("a000") == 0
    assert leading_zero_count("0000") == 4


@pytest.mark.parametrize("difficulty,zeros", [
    (1, 0), (9, 0), (10, 1), (99, 1), (999, 2), (1000, 3),
    (1_000_000, 6), (9_999_999, 6), (10_000_000, 7),
])
def test_required_leading_zeros(difficulty, zeros):
    assert required_leading_zeros(difficulty) == zeros


def test_acceptance_is_coarse_within_a_decade():
    a = make_proof("000" + "1" * 61)
    b = make_proof("000" + "f" * 61)

    for difficulty in (1000, 2500, 9999):
        assert a.verify(difficulty) and b.verify(difficulty)
    for difficulty in (10_000, 99_999):
        assert not a.verify(difficulty) and not b.verify(difficulty)


def test_more_zeros_than_required_accepted():
    assert make_proof("0" * 8 + "f" * 56).verify(1_000_000)
    assert not make_proof("0" * 5 + "f" * 59).verify(1_000_000)
