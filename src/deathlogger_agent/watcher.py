"""Filesystem watching: turns watchdog events into queued signals for the main loop."""

import logging
import queue
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import SAVED_VARIABLES_FILENAME, GamePaths
from .screenshots import is_screenshot_file

logger = logging.getLogger(__name__)

SIGNAL_QUEUE_SIZE = 1024

SAVED_VARIABLES = "saved_variables"
SCREENSHOT = "screenshot"


@dataclass(frozen=True)
class FsSignal:
    """A file that may need attention: a SavedVariables file or a screenshot."""

    kind: str
    path: Path


def classify_path(path: Path) -> Optional[str]:
    """Return the signal kind for a path, or None for files the agent ignores."""
    path = Path(path)
    if path.name.casefold() == SAVED_VARIABLES_FILENAME.casefold():
        return SAVED_VARIABLES
    if is_screenshot_file(path):
        return SCREENSHOT
    return None


def new_signal_queue() -> "queue.Queue[FsSignal]":
    return queue.Queue(maxsize=SIGNAL_QUEUE_SIZE)


class AgentEventHandler(FileSystemEventHandler):
    """
    Runs on the observer thread and only produces signals.

    Delivery state is never touched here; the main loop consumes the queue.
    """

    def __init__(self, signals: "queue.Queue[FsSignal]"):
        super().__init__()
        self.signals = signals

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._emit(event.dest_path)

    def _emit(self, raw_path) -> None:
        path = Path(raw_path if isinstance(raw_path, str) else raw_path.decode())
        kind = classify_path(path)
        if kind is None:
            return

        try:
            self.signals.put_nowait(FsSignal(kind, path))
        except queue.Full:
            logger.debug(f"Signal queue full, dropping {path} (next sweep will pick it up)")


def start_observer(paths: GamePaths, signals: "queue.Queue[FsSignal]") -> Observer:
    """
    Watch account SavedVariables recursively and the screenshots folder flat.

    Returns:
        The started observer; the caller stops and joins it
    """
    handler = AgentEventHandler(signals)
    observer = Observer()

    if paths.accounts_dir.is_dir():
        observer.schedule(handler, str(paths.accounts_dir), recursive=True)
        logger.info(f"Watching {paths.accounts_dir}")
    else:
        logger.warning(f"{paths.accounts_dir} does not exist yet; relying on periodic sweeps")

    if paths.screenshots_dir.is_dir():
        observer.schedule(handler, str(paths.screenshots_dir), recursive=False)
        logger.info(f"Watching {paths.screenshots_dir}")
    else:
        logger.warning(f"Screenshots folder {paths.screenshots_dir} is missing; screenshots will not be paired")

    observer.start()
    return observer
