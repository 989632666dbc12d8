"""Persistent delivery ledger and pending-screenshot queue."""

import json
import logging
import os
import time
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

MAX_PENDING_SCREENSHOTS = 50


@dataclass
class PendingScreenshot:
    """A screenshot seen on disk that has not been uploaded with a death yet."""

    path: str
    ts_epoch: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingScreenshot":
        return cls(path=str(data["path"]), ts_epoch=int(data["ts_epoch"]))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DeliveryState:
    """
    Last uploaded death timestamp per player@realm, plus queued screenshots.

    The queue is kept in arrival order; the oldest entry is evicted first
    once it grows past MAX_PENDING_SCREENSHOTS. Screenshots already uploaded
    with a death are remembered by path and timestamp, so late filesystem
    events for the same capture do not queue it again.
    """

    last_uploaded: Dict[str, int] = field(default_factory=dict)
    pending_screens: List[PendingScreenshot] = field(default_factory=list)
    consumed_screens: Dict[str, int] = field(default_factory=dict)

    def last_delivered(self, key: str) -> int:
        return self.last_uploaded.get(key, 0)

    def mark_delivered(self, key: str, at: int) -> None:
        self.last_uploaded[key] = at

    def was_consumed(self, shot: PendingScreenshot) -> bool:
        """True if this exact capture (same path and timestamp) was already uploaded."""
        return self.consumed_screens.get(shot.path) == shot.ts_epoch

    def enqueue_screenshot(self, shot: PendingScreenshot) -> List[PendingScreenshot]:
        """
        Queue a screenshot, refreshing the timestamp if the path is already queued.

        A capture that was already uploaded is ignored; a new file written to
        the same path (different timestamp) is queued again.

        Returns:
            Entries evicted to keep the queue within capacity
        """
        if self.was_consumed(shot):
            return []
        self.consumed_screens.pop(shot.path, None)

        for queued in self.pending_screens:
            if queued.path == shot.path:
                queued.ts_epoch = shot.ts_epoch
                return []

        self.pending_screens.append(shot)

        evicted = []
        while len(self.pending_screens) > MAX_PENDING_SCREENSHOTS:
            evicted.append(self.pending_screens.pop(0))
        return evicted

    def remove_screenshot(self, path: str) -> bool:
        """Drop a queued screenshot by path; returns whether anything was removed."""
        before = len(self.pending_screens)
        self.pending_screens = [s for s in self.pending_screens if s.path != path]
        return len(self.pending_screens) != before

    def consume_screenshot(self, shot: PendingScreenshot) -> None:
        """Drop a screenshot that was uploaded with a death and remember it."""
        self.remove_screenshot(shot.path)
        self.consumed_screens.pop(shot.path, None)
        self.consumed_screens[shot.path] = shot.ts_epoch

        # Insertion ordered, so the first key is the oldest
        while len(self.consumed_screens) > MAX_PENDING_SCREENSHOTS:
            del self.consumed_screens[next(iter(self.consumed_screens))]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryState":
        last_uploaded = {str(k): int(v) for k, v in data.get("last_uploaded", {}).items()}
        pending = [PendingScreenshot.from_dict(s) for s in data.get("pending_screens", [])]
        consumed = {str(k): int(v) for k, v in data.get("consumed_screens", {}).items()}
        return cls(last_uploaded=last_uploaded, pending_screens=pending, consumed_screens=consumed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_uploaded": dict(self.last_uploaded),
            "pending_screens": [s.to_dict() for s in self.pending_screens],
            "consumed_screens": dict(self.consumed_screens),
        }


class StateStore:
    """JSON file holding the DeliveryState, rewritten atomically after every change."""

    def __init__(self, path: Path):
        """
        Initialize the store.

        Args:
            path: Location of state.json; a sibling agent.lock guards single use
        """
        self.path = Path(path)
        self.lock_file = self.path.parent / "agent.lock"

    def load(self) -> DeliveryState:
        """
        Load persisted state.

        A missing file yields empty state. An unreadable or corrupt file also
        yields empty state: recent deaths may be uploaded again, but the agent
        keeps running.
        """
        if not self.path.exists():
            return DeliveryState()

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("state root is not an object")
            return DeliveryState.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Could not load state from {self.path}, starting fresh: {e}")
            return DeliveryState()

    def save(self, state: DeliveryState) -> None:
        """
        Persist state: write to a temp file, then replace the real one.

        Raises:
            OSError: If the file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        try:
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    def flush(self, state: DeliveryState) -> bool:
        """Save state, logging instead of raising on I/O errors; in-memory state stays authoritative."""
        try:
            self.save(state)
            return True
        except OSError as e:
            logger.error(f"Could not persist state to {self.path}: {e}")
            return False

    def acquire_lock(self) -> bool:
        """
        Attempt to acquire a simple PID lock file.

        Returns:
            True if lock acquired, False if another agent appears to hold it
        """
        try:
            if self.lock_file.exists():
                try:
                    old_pid = int(self.lock_file.read_text().strip())

                    if os.name == "posix":
                        try:
                            os.kill(old_pid, 0)
                            if old_pid != os.getpid():
                                return False
                        except ProcessLookupError:
                            pass
                    else:
                        # No cheap liveness check on Windows; treat fresh locks as held
                        lock_age = time.time() - self.lock_file.stat().st_mtime
                        if lock_age < 300:
                            return False

                except (ValueError, OSError):
                    pass

                self.lock_file.unlink(missing_ok=True)

            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            self.lock_file.write_text(str(os.getpid()))
            return True

        except OSError as e:
            logger.warning(f"Could not acquire lock {self.lock_file}: {e}")
            return False

    def release_lock(self) -> None:
        """Release the PID lock file."""
        self.lock_file.unlink(missing_ok=True)
