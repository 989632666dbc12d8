"""Tracking of screenshots written by the game client."""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from .state import DeliveryState, PendingScreenshot, StateStore

logger = logging.getLogger(__name__)

SCREENSHOT_EXTENSIONS = {".jpg", ".jpeg", ".png"}


def is_screenshot_file(path: Path) -> bool:
    """Check for an existing file with an image extension WoW uses."""
    path = Path(path)
    return path.suffix.lower() in SCREENSHOT_EXTENSIONS and path.is_file()


def screenshot_timestamp(path: Path, now: Optional[Callable[[], float]] = None) -> int:
    """File modification time in epoch seconds, or the current time if it cannot be read."""
    try:
        return int(Path(path).stat().st_mtime)
    except OSError:
        return int((now or time.time)())


class ScreenshotObserver:
    """Queues newly seen screenshots into the delivery state."""

    def __init__(self, state: DeliveryState, store: StateStore):
        self.state = state
        self.store = store

    def observe(self, path: Path) -> Optional[PendingScreenshot]:
        """
        Record a screenshot and persist the queue.

        Args:
            path: Screenshot file reported by the watcher

        Returns:
            The queued entry, or None if this capture was already uploaded
        """
        path = Path(path).absolute()
        shot = PendingScreenshot(path=str(path), ts_epoch=screenshot_timestamp(path))

        if self.state.was_consumed(shot):
            logger.debug(f"Screenshot already uploaded, ignoring: {path}")
            return None

        evicted = self.state.enqueue_screenshot(shot)
        for old in evicted:
            logger.debug(f"Dropped oldest queued screenshot: {old.path}")

        self.store.flush(self.state)
        logger.info(f"New screenshot queued: {path}")
        return shot
