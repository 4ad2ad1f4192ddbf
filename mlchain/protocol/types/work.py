# MIT License
# Copyright (c) 2025 Hashborn

import json
import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .common import SerializationError
from .operations import MLOperation

SUBMISSION_MARKER = "fp8_mining_proof"


class OperationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    result_hash: str            # hex SHA3-256 of the quantized output
    flops: int = Field(ge=0)    # closed-form FLOP count
    execution_time_ms: int = 0


class WorkUnit(BaseModel):
    """One mining attempt: the operations to run for a given nonce."""
    model_config = ConfigDict(frozen=True)

    id: str
    previous_hash: str
    timestamp: int              # unix time
    difficulty: int
    operations: List[MLOperation]
    nonce_range: Tuple[int, int]

    @property
    def nonce(self) -> int:
        return self.nonce_range[0]


class WorkResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    work_id: str
    nonce: int
    hash: str                   # work_hash of the proof built from this result
    execution_time_ms: int
    total_flops: int
    operation_results: List[OperationResult]

    @property
    def operation_hashes(self) -> List[str]:
        return [r.result_hash for r in self.operation_results]

    def to_submission(self, timestamp: Optional[int] = None) -> Dict[str, Any]:
        """Payload handed to the ledger for this result."""
        payload = self.model_dump(mode="json")
        payload["timestamp"] = int(time.time()) if timestamp is None else timestamp
        payload["verification"] = SUBMISSION_MARKER
        return payload

    def to_json(self, timestamp: Optional[int] = None) -> str:
        try:
            return json.dumps(self.to_submission(timestamp), sort_keys=True)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to serialize work result {self.work_id}: {e}") from e


class MiningStats(BaseModel):
    hashrate: float = 0.0           # operations per second of uptime
    teraflops: float = 0.0          # TFLOPS of the last attempt
    blocks_found: int = 0           # accepted proofs
    total_operations: int = 0       # ML operations executed
    failed_attempts: int = 0
    uptime_seconds: int = 0
    tokens_earned: int = 0
