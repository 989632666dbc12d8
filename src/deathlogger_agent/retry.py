"""Backoff for SavedVariables files that keep failing during reconciliation."""

import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict


def compute_backoff(
    attempt: int,
    base: float,
    max_delay: float,
    jitter_ratio: float
) -> float:
    """
    Compute exponential backoff delay with jitter.

    Args:
        attempt: Consecutive failures so far minus one (0-based)
        base: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter_ratio: Jitter ratio (0.0 to 1.0)

    Returns:
        Delay in seconds (minimum 0.1s)
    """
    delay = min(max_delay, base * (2 ** attempt))
    jitter = random.uniform(-jitter_ratio, jitter_ratio) * delay
    return max(0.1, delay + jitter)


@dataclass
class FailureRecord:
    failures: int
    next_attempt_at: float
    last_error: str


class SourceBackoff:
    """
    Tracks consecutive failures per source file.

    A file that fails is skipped by sweeps until its backoff elapses. Nothing
    is given up on for good: the delay is capped and a success clears it.
    """

    def __init__(self, base_secs: float = 10.0, max_secs: float = 300.0, jitter_ratio: float = 0.2):
        self.base_secs = base_secs
        self.max_secs = max_secs
        self.jitter_ratio = jitter_ratio
        self._failures: Dict[Path, FailureRecord] = {}

    def is_due(self, path: Path, now: float) -> bool:
        record = self._failures.get(Path(path))
        return record is None or now >= record.next_attempt_at

    def record_failure(self, path: Path, now: float, error: str) -> float:
        """Register a failure; returns the delay before the next sweep may retry."""
        path = Path(path)
        previous = self._failures.get(path)
        failures = previous.failures + 1 if previous else 1

        delay = compute_backoff(failures - 1, self.base_secs, self.max_secs, self.jitter_ratio)
        self._failures[path] = FailureRecord(failures, now + delay, error)
        return delay

    def record_success(self, path: Path) -> None:
        self._failures.pop(Path(path), None)

    def failures(self, path: Path) -> int:
        record = self._failures.get(Path(path))
        return record.failures if record else 0
