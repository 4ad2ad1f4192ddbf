# MIT License
# Copyright (c) 2025 Hashborn

"""
Work-unit orchestrator and mining loop.

One attempt per nonce:

    build(nonce) -> execute operations (thread pool) -> aggregate in declaration
    order -> Proof.build / verify -> hand accepted results to the sink

An attempt fails as a whole if any kernel raises; the loop logs it and moves
on to the next nonce. Submission runs in the background and never blocks the
next attempt.

With a timing source, the difficulty is resynced from the chain every
`difficulty_adjustment_interval` attempts.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..blockchain.consensus.difficulty import DifficultyController
from ..fp8.executor import (
    KernelExecutor,
    calculate_flops_per_second,
    calculate_total_flops,
    execute_ml_operation,
    flops_to_teraflops,
    get_executor,
)
from ..fp8.tensor import U64_MASK, derive_seed
from ..observability import metrics
from ..protocol.config.params import NetworkConfig
from ..protocol.types.common import AttemptOutcome, NetworkError
from ..protocol.types.operations import (
    BatchNormalization,
    Convolution2D,
    MatrixMultiply,
    MLOperation,
    MultiHeadAttention,
    operation_kind,
)
from ..protocol.types.proof import Proof
from ..protocol.types.work import MiningStats, OperationResult, WorkResult, WorkUnit
from ..rpc.client import BlockTimingSource, SubmissionSink

logger = logging.getLogger(__name__)

GENESIS_HASH = "0x" + "0" * 40
NONCE_RANGE_SIZE = 1000


def default_operations(nonce: int) -> List[MLOperation]:
    """Standard mining mix: one operation of each kind, seeds nonce..nonce+3."""
    return [
        MatrixMultiply(dims=(256, 256, 256), seed=derive_seed(nonce, 0)),
        Convolution2D(
            input_shape=(8, 64, 16, 16),
            kernel_shape=(128, 64, 3, 3),
            stride=(1, 1),
            padding=(1, 1),
            seed=derive_seed(nonce, 1),
        ),
        MultiHeadAttention(batch=4, seq_len=32, d_model=128, num_heads=8, seed=derive_seed(nonce, 2)),
        BatchNormalization(shape=(8, 128, 16, 16), epsilon=1e-5, seed=derive_seed(nonce, 3)),
    ]


class MiningAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    work_unit: WorkUnit
    work_result: WorkResult
    proof: Proof
    accepted: bool

    @property
    def outcome(self) -> AttemptOutcome:
        return AttemptOutcome.ACCEPTED if self.accepted else AttemptOutcome.REJECTED


class MiningOrchestrator:
    def __init__(self,
                 config: NetworkConfig,
                 difficulty: DifficultyController,
                 executor: Optional[KernelExecutor] = None,
                 sink: Optional[SubmissionSink] = None,
                 timing_source: Optional[BlockTimingSource] = None,
                 threads: Optional[int] = None,
                 target_teraflops: Optional[float] = None,
                 attempt_interval: float = 0.1):
        self.config = config
        self.difficulty = difficulty
        self.executor = executor or get_executor(config.backend)
        self.sink = sink                      # None: dry run, nothing is submitted
        self.timing_source = timing_source    # None: difficulty stays fixed
        self.threads = threads or config.worker_threads
        self.target_teraflops = target_teraflops
        self.attempt_interval = attempt_interval

        self.stats = MiningStats()
        self.running = False
        self._start_time = time.time()
        self._stats_lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=self.threads, thread_name_prefix="kernel")
        self._submissions: List[Future] = []

    # --- Single attempt ---

    def build_work_unit(self, nonce: int, previous_hash: str = GENESIS_HASH) -> WorkUnit:
        nonce &= U64_MASK
        return WorkUnit(
            id=f"work_{nonce}",
            previous_hash=previous_hash,
            timestamp=int(time.time()),
            difficulty=self.difficulty.current,
            operations=default_operations(nonce),
            nonce_range=(nonce, min(nonce + NONCE_RANGE_SIZE, U64_MASK)),
        )

    def _execute(self, operation: MLOperation) -> OperationResult:
        result = execute_ml_operation(operation, self.executor)
        metrics.record_operation(
            operation_kind(operation).value,
            self.executor.name,
            result.execution_time_ms / 1000.0,
            result.flops,
        )
        return result

    def mine_work_unit(self, work_unit: WorkUnit) -> MiningAttempt:
        """
        Execute every operation of a work unit and build its proof.

        Operations run concurrently on the kernel pool; results are collected
        in declaration order, which is the order hashed into the proof.

        Raises:
            ProtocolError: any operation failed (the attempt is discarded)
        """
        logger.info(f"Mining work unit {work_unit.id} ({len(work_unit.operations)} operations)")
        start = time.perf_counter()

        futures = [self._pool.submit(self._execute, op) for op in work_unit.operations]
        try:
            results = [f.result() for f in futures]
        except Exception:
            for f in futures:
                f.cancel()
            raise

        execution_time_ms = int((time.perf_counter() - start) * 1000)
        total_flops = calculate_total_flops(results)

        proof = Proof.build(
            nonce=work_unit.nonce,
            operation_hashes=[r.result_hash for r in results],
            total_flops=total_flops,
            timestamp=int(time.time()),
        )
        accepted = proof.verify(work_unit.difficulty)

        work_result = WorkResult(
            work_id=work_unit.id,
            nonce=work_unit.nonce,
            hash=proof.work_hash,
            execution_time_ms=execution_time_ms,
            total_flops=total_flops,
            operation_results=results,
        )
        return MiningAttempt(work_unit=work_unit, work_result=work_result, proof=proof, accepted=accepted)

    def mine_once(self, nonce: int, previous_hash: str = GENESIS_HASH) -> MiningAttempt:
        return self.mine_work_unit(self.build_work_unit(nonce, previous_hash))

    # --- Loop ---

    def run(self, max_attempts: Optional[int] = None, start_nonce: int = 0,
            previous_hash: str = GENESIS_HASH) -> MiningStats:
        """
        Mine until stopped or `max_attempts` attempts have been made.

        Returns:
            Final MiningStats
        """
        logger.info(
            f"Starting mining with {self.threads} threads on {self.executor.name} backend "
            f"(difficulty {self.difficulty.current})"
        )
        self.running = True
        self._start_time = time.time()
        nonce = start_nonce & U64_MASK
        attempts = 0

        while self.running and (max_attempts is None or attempts < max_attempts):
            attempts += 1
            try:
                attempt = self.mine_once(nonce, previous_hash)
            except Exception as e:
                logger.warning(f"Mining attempt for nonce {nonce} failed: {e}")
                with self._stats_lock:
                    self.stats.failed_attempts += 1
                metrics.record_attempt(AttemptOutcome.FAILED.value)
            else:
                self._handle_attempt(attempt)

            if attempts % self.config.difficulty_adjustment_interval == 0:
                self._sync_difficulty()

            nonce = (nonce + 1) & U64_MASK
            if self.attempt_interval and self.running and (max_attempts is None or attempts < max_attempts):
                time.sleep(self.attempt_interval)

        self.running = False
        return self.stats

    def stop(self):
        self.running = False

    def _sync_difficulty(self):
        if self.timing_source is None:
            return
        try:
            self.difficulty.sync_from(self.timing_source)
        except NetworkError as e:
            logger.warning(f"Difficulty sync failed, keeping {self.difficulty.current}: {e}")

    def _handle_attempt(self, attempt: MiningAttempt):
        result = attempt.work_result
        teraflops = self._update_stats(result, attempt.accepted)
        metrics.record_attempt(attempt.outcome.value, teraflops)

        if self.target_teraflops is not None and teraflops >= self.target_teraflops:
            logger.info(f"Target achieved: {teraflops:.4f} TFLOPS (target {self.target_teraflops})")

        if not attempt.accepted:
            logger.debug(
                f"Work {result.work_id} rejected: {attempt.proof.leading_zeros()} leading zeros "
                f"at difficulty {attempt.work_unit.difficulty}"
            )
            return

        logger.info(f"Work {result.work_id} accepted (hash {result.hash})")
        self._submit(result)

    def _update_stats(self, result: WorkResult, accepted: bool) -> float:
        rate = calculate_flops_per_second(result.total_flops, result.execution_time_ms / 1000.0)
        teraflops = flops_to_teraflops(rate)
        with self._stats_lock:
            stats = self.stats
            stats.total_operations += len(result.operation_results)
            stats.uptime_seconds = int(time.time() - self._start_time)
            stats.teraflops = teraflops
            if stats.uptime_seconds > 0:
                stats.hashrate = stats.total_operations / stats.uptime_seconds
            if accepted:
                stats.blocks_found += 1
        return teraflops

    # --- Submission ---

    def _submit(self, work_result: WorkResult):
        if self.sink is None:
            logger.info(f"Dry run: work {work_result.work_id} not submitted")
            metrics.record_submission("skipped")
            return

        future = self.sink.submit(work_result)
        future.add_done_callback(lambda f: self._on_submitted(work_result.work_id, f))
        self._submissions = [f for f in self._submissions if not f.done()]
        self._submissions.append(future)

    def _on_submitted(self, work_id: str, future: Future):
        try:
            tx_hash = future.result()
        except Exception as e:
            logger.error(f"Submission of {work_id} failed: {e}")
            metrics.record_submission("failed")
            return
        logger.info(f"Submission of {work_id} confirmed: {tx_hash}")
        metrics.record_submission("success")

    def pending_submissions(self) -> int:
        return sum(1 for f in self._submissions if not f.done())

    def close(self, wait: bool = True):
        """Shuts down the kernel pool; waits for outstanding submissions if asked."""
        self.running = False
        if wait:
            for f in self._submissions:
                try:
                    f.result()
                except Exception:
                    # Already logged by _on_submitted
                    continue
        self._pool.shutdown(wait=wait)
