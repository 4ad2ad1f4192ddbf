import hashlib


def sha3_256(data: bytes) -> bytes:
    """Returns SHA3-256 hash of bytes."""
    return hashlib.sha3_256(data).digest()

def sha3_256_hex(data: bytes) -> str:
    """Returns SHA3-256 hash of bytes as hex string."""
    return sha3_256(data).hex()

def hash_operation_result(data: bytes) -> str:
    """Content hash of a kernel's quantized output bytes."""
    return sha3_256_hex(data)
