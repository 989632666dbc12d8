"""Delivery of new deaths, exactly once per player@realm and timestamp."""

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from .http_client import DeathUploader
from .pairing import find_nearest_screenshot
from .records import read_latest_death
from .state import DeliveryState, StateStore

logger = logging.getLogger(__name__)


class HandleOutcome(str, Enum):
    """What DeliveryPipeline.handle did with a SavedVariables file."""

    MISSING = "missing"
    NO_RECORD = "no_record"
    ALREADY_DELIVERED = "already_delivered"
    DELIVERED = "delivered"


def format_epoch(ts: int) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return str(ts)


class DeliveryPipeline:
    """
    Reads a SavedVariables file and uploads its latest death if it is new.

    The ledger in DeliveryState is the only duplicate check: it advances only
    after the server accepted the upload, so a failed upload is retried by
    the next call for the same file, and a repeated call after success does
    nothing.
    """

    def __init__(self, state: DeliveryState, store: StateStore, uploader: DeathUploader,
                 pair_window_secs: int = 120):
        self.state = state
        self.store = store
        self.uploader = uploader
        self.pair_window_secs = pair_window_secs

    def handle(self, source_path: Path) -> HandleOutcome:
        """
        Process one SavedVariables file.

        Args:
            source_path: Path to a DeathLogger.lua SavedVariables file

        Returns:
            The outcome; everything except DELIVERED is a deliberate no-op

        Raises:
            LuaParseError: If the file cannot be evaluated (usually caught mid-write)
            OSError: If the file or the paired screenshot cannot be read
            UploadError: If the upload failed; the ledger is left untouched
        """
        source_path = Path(source_path)
        if not source_path.exists():
            return HandleOutcome.MISSING

        record = read_latest_death(source_path)
        if record is None:
            return HandleOutcome.NO_RECORD

        key = record.identity_key
        already = self.state.last_delivered(key)
        if record.at <= already:
            logger.debug(f"Nothing new for {key} (latest {record.at}, delivered {already})")
            return HandleOutcome.ALREADY_DELIVERED

        self._prune_missing_screenshots()
        near = find_nearest_screenshot(self.state.pending_screens, record.at, self.pair_window_secs)

        logger.info(
            f"Uploading new {record.class_name or ''} death for {key} at {format_epoch(record.at)} "
            f"(screenshot: {'yes' if near else 'no'})"
        )

        self.uploader.upload(record, Path(near.path) if near else None)

        self.state.mark_delivered(key, record.at)
        if near:
            self.state.consume_screenshot(near)
        self.store.flush(self.state)

        logger.info(f"Uploaded death for {key} at {format_epoch(record.at)}")
        return HandleOutcome.DELIVERED

    def _prune_missing_screenshots(self) -> None:
        """Forget queued screenshots whose files were deleted, so they are never paired."""
        missing = [s for s in self.state.pending_screens if not Path(s.path).is_file()]
        if not missing:
            return

        for shot in missing:
            logger.info(f"Queued screenshot no longer exists, dropping: {shot.path}")
            self.state.remove_screenshot(shot.path)
        self.store.flush(self.state)
