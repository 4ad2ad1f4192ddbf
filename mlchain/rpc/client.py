# MIT License
# Copyright (c) 2025 Hashborn

"""
Ledger collaborators.

The miner needs two things from the chain: somewhere to hand finished work
results (SubmissionSink) and the observed block intervals used for
retargeting (BlockTimingSource). LedgerClient provides both over a node's
REST API:

    POST /work/submit             -> {"tx_hash": "..."}
    GET  /status                  -> {"height": ..., "difficulty": ..., ...}
    GET  /balance/{address}       -> {"balance": ..., ...}
    GET  /blocks/timestamps?count -> {"timestamps": [unix seconds, oldest first]}
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List

import requests

from ..protocol.types.common import NetworkError
from ..protocol.types.work import WorkResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class SubmissionSink(ABC):
    @abstractmethod
    def submit(self, work_result: WorkResult) -> "Future[str]":
        """Hands a work result over; the future resolves to a transaction id or raises."""


class BlockTimingSource(ABC):
    @abstractmethod
    def block_intervals(self, count: int) -> List[float]:
        """Seconds between the most recent `count` consecutive blocks."""


class LedgerClient(SubmissionSink, BlockTimingSource):
    def __init__(self, node_url: str, timeout: float = DEFAULT_TIMEOUT, max_workers: int = 2):
        self.node_url = node_url.rstrip("/")
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ledger-submit")

    def _get(self, path: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        try:
            resp = requests.get(f"{self.node_url}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Connection error: {e}") from e
        if resp.status_code != 200:
            raise NetworkError(f"Node error ({resp.status_code}): {resp.text}")
        return resp.json()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(f"{self.node_url}{path}", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Connection error: {e}") from e
        if resp.status_code != 200:
            raise NetworkError(f"Node error ({resp.status_code}): {resp.text}")
        return resp.json()

    # --- Submission ---

    def submit_work(self, work_result: WorkResult) -> str:
        """Blocking submission. Returns the transaction id assigned by the node."""
        data = self._post("/work/submit", work_result.to_submission())
        tx_hash = data.get("tx_hash")
        if not tx_hash:
            raise NetworkError(f"Node did not return a tx_hash: {data}")
        logger.info(f"Work {work_result.work_id} submitted: {tx_hash}")
        return tx_hash

    def submit(self, work_result: WorkResult) -> "Future[str]":
        return self._pool.submit(self.submit_work, work_result)

    # --- Queries ---

    def get_status(self) -> Dict[str, Any]:
        return self._get("/status")

    def get_block_number(self) -> int:
        return int(self.get_status()["height"])

    def get_difficulty(self) -> int:
        return int(self.get_status()["difficulty"])

    def get_balance(self, address: str) -> int:
        return int(self._get(f"/balance/{address}")["balance"])

    def block_intervals(self, count: int) -> List[float]:
        if count <= 0:
            return []
        data = self._get("/blocks/timestamps", params={"count": count + 1})
        timestamps = [float(t) for t in data.get("timestamps", [])]
        return [later - earlier for earlier, later in zip(timestamps, timestamps[1:])]

    def close(self):
        self._pool.shutdown(wait=True)
