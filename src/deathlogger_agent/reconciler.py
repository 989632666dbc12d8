"""Periodic sweep over all SavedVariables files, covering missed watcher events."""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import GamePaths
from .pipeline import DeliveryPipeline, HandleOutcome
from .retry import SourceBackoff

logger = logging.getLogger(__name__)

# Outcomes that stay valid until the file changes on disk
SETTLED_OUTCOMES = (HandleOutcome.NO_RECORD, HandleOutcome.ALREADY_DELIVERED, HandleOutcome.DELIVERED)


def file_signature(path: Path) -> Optional[Tuple[int, int]]:
    """(mtime_ns, size) of a file, or None if it cannot be stat'ed."""
    try:
        st = Path(path).stat()
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


def discover_sources(paths: GamePaths) -> List[Path]:
    """Find every DeathLogger SavedVariables file, account-wide and per character."""
    accounts_dir = paths.accounts_dir
    if not accounts_dir.is_dir():
        return []

    found = set()
    for pattern in paths.saved_variables_patterns():
        found.update(p for p in accounts_dir.glob(pattern) if p.is_file())
    return sorted(found)


class Reconciler:
    """
    Re-runs the delivery pipeline on a fixed interval for all known sources.

    A source whose last run settled (nothing new, or delivered) is remembered
    by its stat signature and not parsed again until the file changes. Failed
    runs are never remembered, so they are retried.
    """

    def __init__(self, pipeline: DeliveryPipeline, paths: GamePaths,
                 interval_secs: float = 10.0, backoff: Optional[SourceBackoff] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.pipeline = pipeline
        self.paths = paths
        self.interval_secs = interval_secs
        self.backoff = backoff or SourceBackoff(base_secs=interval_secs)
        self.clock = clock
        self._last_sweep = clock()
        self._settled: Dict[Path, Tuple[int, int]] = {}

    def is_due(self) -> bool:
        return self.clock() - self._last_sweep >= self.interval_secs

    def process(self, source: Path, force: bool = False) -> Optional[HandleOutcome]:
        """
        Run the pipeline for one file, logging failures instead of raising.

        Args:
            source: SavedVariables file
            force: Ignore the file's backoff and settled signature (used for fresh watcher signals)

        Returns:
            The pipeline outcome, or None if skipped or failed
        """
        source = Path(source)
        now = self.clock()
        if not force and not self.backoff.is_due(source, now):
            logger.debug(f"Skipping {source} until its backoff elapses")
            return None

        # Taken before reading so a write during the read is picked up next time
        signature = file_signature(source)
        if not force and signature is not None and self._settled.get(source) == signature:
            return None

        self._settled.pop(source, None)
        try:
            outcome = self.pipeline.handle(source)
        except Exception as e:
            delay = self.backoff.record_failure(source, now, str(e))
            failures = self.backoff.failures(source)
            logger.warning(
                f"Could not process {source} (failure {failures}, next sweep retry in {delay:.0f}s): {e}"
            )
            return None

        self.backoff.record_success(source)
        if outcome in SETTLED_OUTCOMES and signature is not None:
            self._settled[source] = signature
        return outcome

    def is_settled(self, source: Path) -> bool:
        return Path(source) in self._settled

    def sweep(self) -> int:
        """
        Process every discoverable source once.

        Returns:
            Number of deaths delivered during the sweep
        """
        self._last_sweep = self.clock()
        delivered = 0
        for source in discover_sources(self.paths):
            if self.process(source) == HandleOutcome.DELIVERED:
                delivered += 1
        return delivered

    def sweep_if_due(self) -> int:
        if not self.is_due():
            return 0
        return self.sweep()
