# MIT License
# Copyright (c) 2025 Hashborn

"""
Difficulty retargeting.

Difficulty is measured in "required compute" units; 1 TFLOPS = 1e6 units.
After every `difficulty_adjustment_interval` blocks the mean block interval
is compared with `block_time_target`:

    ratio = clamp(actual / target, 1 / max_factor, max_factor)
    new   = max(floor(current / ratio), MIN_DIFFICULTY)

Fast blocks (ratio < 1) raise difficulty, slow blocks lower it.
"""

import logging
import math
import threading
from typing import List, Optional

from ...observability import metrics
from ...protocol.config.params import DIFFICULTY_PER_TERAFLOP, MIN_DIFFICULTY, NetworkConfig
from ...protocol.types.common import ValidationError
from ...rpc.client import BlockTimingSource

logger = logging.getLogger(__name__)


def adjust_difficulty(
    current_difficulty: int,
    actual_block_time: float,
    target_block_time: float,
    max_adjustment_factor: float,
) -> int:
    if target_block_time <= 0:
        raise ValidationError(f"target_block_time must be positive, got {target_block_time}")
    if max_adjustment_factor <= 1:
        raise ValidationError(f"max_adjustment_factor must be greater than 1, got {max_adjustment_factor}")

    ratio = actual_block_time / target_block_time
    ratio = min(max(ratio, 1.0 / max_adjustment_factor), max_adjustment_factor)

    new_difficulty = math.floor(current_difficulty / ratio)
    return max(new_difficulty, MIN_DIFFICULTY)


def teraflops_to_difficulty(tflops: float) -> int:
    return int(round(tflops * DIFFICULTY_PER_TERAFLOP))


def difficulty_to_teraflops(difficulty: int) -> float:
    return difficulty / DIFFICULTY_PER_TERAFLOP


class DifficultyController:
    """
    Owner of the current difficulty.

    Miners read `current` from any thread; `retarget` is the only writer.
    """

    def __init__(self, config: NetworkConfig, initial_difficulty: Optional[int] = None):
        config.validate()
        self.config = config
        self._lock = threading.Lock()
        self._difficulty = max(initial_difficulty or config.initial_difficulty, MIN_DIFFICULTY)
        self._samples: List[float] = []
        self._last_intervals: Optional[tuple] = None
        metrics.set_difficulty(self._difficulty)

    @property
    def current(self) -> int:
        with self._lock:
            return self._difficulty

    def target_teraflops(self) -> float:
        return difficulty_to_teraflops(self.current)

    def retarget(self, actual_block_time: float) -> int:
        with self._lock:
            old = self._difficulty
            self._difficulty = adjust_difficulty(
                old,
                actual_block_time,
                self.config.block_time_target,
                self.config.max_adjustment_factor,
            )
            new = self._difficulty

        metrics.set_difficulty(new)
        logger.info(
            f"Difficulty retarget: {old} -> {new} "
            f"(block time {actual_block_time:.2f}s, target {self.config.block_time_target}s)"
        )
        return new

    def record_block_time(self, seconds: float) -> Optional[int]:
        """
        Collect one block interval.

        Returns:
            New difficulty when this sample completes an adjustment interval,
            None otherwise
        """
        with self._lock:
            self._samples.append(float(seconds))
            if len(self._samples) < self.config.difficulty_adjustment_interval:
                return None
            mean = sum(self._samples) / len(self._samples)
            self._samples.clear()
        return self.retarget(mean)

    def sync_from(self, timing_source: BlockTimingSource) -> Optional[int]:
        """
        Retargets from the last adjustment interval reported by the chain.

        Returns None when the source has no intervals, or reports the same
        window that was already applied.
        """
        intervals = timing_source.block_intervals(self.config.difficulty_adjustment_interval)
        if not intervals:
            logger.warning("Timing source returned no block intervals, difficulty unchanged")
            return None
        window = tuple(intervals)
        with self._lock:
            if window == self._last_intervals:
                return None
            self._last_intervals = window
        return self.retarget(sum(window) / len(window))
