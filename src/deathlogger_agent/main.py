"""Main entrypoint for the DeathLogger Agent."""

import logging
import logging.handlers
import queue
import sys
import threading
from typing import Optional

from .cli import build_config, parse_args
from .config import AgentConfig, ConfigError, ensure_dirs, log_path, state_path
from .http_client import DeathUploader
from .installer import install_or_update_addon
from .pipeline import DeliveryPipeline
from .reconciler import Reconciler, discover_sources
from .screenshots import ScreenshotObserver
from .state import StateStore
from .watcher import SAVED_VARIABLES, SCREENSHOT, FsSignal, new_signal_queue, start_observer

logger = logging.getLogger(__name__)

SIGNAL_WAIT_SECS = 0.5
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def configure_logging(cfg: AgentConfig) -> None:
    """Configure console logging plus a rotating agent.log next to the state file."""
    log_level = logging.DEBUG if cfg.dev else logging.INFO

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_path(cfg),
            maxBytes=1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logging.getLogger().addHandler(file_handler)
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")

    # Reduce noise from libraries
    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('watchdog').setLevel(logging.WARNING)

    if cfg.dev:
        logger.info("Development mode enabled - verbose logging active")


def dispatch(signal: FsSignal, observer: ScreenshotObserver, reconciler: Reconciler) -> None:
    """Route one filesystem signal; errors are logged, never raised."""
    if signal.kind == SCREENSHOT:
        try:
            observer.observe(signal.path)
        except Exception as e:
            logger.error(f"Error handling screenshot {signal.path}: {e}")

    elif signal.kind == SAVED_VARIABLES:
        # A fresh write is a new chance, so skip the sweep backoff
        reconciler.process(signal.path, force=True)


def run_loop(
    signals: "queue.Queue[FsSignal]",
    observer: ScreenshotObserver,
    reconciler: Reconciler,
    stop: Optional[threading.Event] = None,
) -> None:
    """
    Single consumer of watcher signals, interleaved with reconciliation sweeps.

    All mutation of delivery state happens on this thread, one signal or
    sweep at a time.
    """
    stop = stop or threading.Event()
    logger.info("Agent is running. Press Ctrl+C to exit.")

    while not stop.is_set():
        try:
            signal = signals.get(timeout=SIGNAL_WAIT_SECS)
        except queue.Empty:
            signal = None

        if signal is not None:
            dispatch(signal, observer, reconciler)

        delivered = reconciler.sweep_if_due()
        if delivered:
            logger.info(f"Reconciliation sweep delivered {delivered} death(s)")


def prepare_game_folders(cfg: AgentConfig) -> None:
    """Install or refresh the addon, and make sure the folders the agent watches exist."""
    paths = cfg.paths

    if cfg.update_addon_on_start:
        try:
            install_or_update_addon(paths, timeout_secs=cfg.http_timeout_secs)
        except Exception as e:
            logger.warning(f"Addon update failed: {e}")

    for folder in (paths.addon_dir, paths.screenshots_dir):
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create {folder}: {e}")


def main(config=None, argv=None) -> int:
    """
    Main entrypoint for the agent.

    Args:
        config: Optional AgentConfig instance (overrides argv)
        argv: Command line arguments (for testing)

    Returns:
        Exit code (0 for success)
    """
    try:
        if config is not None:
            cfg = config
        else:
            ns = parse_args(argv)
            cfg = build_config(ns)

        ensure_dirs(cfg)
        configure_logging(cfg)

    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error(f"Configuration error: {e}")
        return 1

    paths = cfg.paths
    store = StateStore(state_path(cfg))

    locked = store.acquire_lock()
    if not locked:
        logger.warning("Could not acquire lock file - another agent may be running")
        if not cfg.dev:
            logger.error("Exiting to prevent two agents sharing one ledger (use --dev to override)")
            return 1

    uploader = DeathUploader(cfg.api_url, cfg.api_token, timeout_secs=cfg.http_timeout_secs)

    try:
        logger.info("DeathLogger Agent starting")
        logger.info(f"WoW: {paths.branch_root}")
        logger.info(f"Upload URL: {cfg.api_url}")
        logger.info(f"State file: {store.path}")

        prepare_game_folders(cfg)

        sources = discover_sources(paths)
        if sources:
            logger.info(f"Monitoring {len(sources)} SavedVariables file(s)")
        else:
            logger.info(
                "No SavedVariables found yet. The file appears after running the game "
                "once with the addon loaded."
            )

        state = store.load()
        pipeline = DeliveryPipeline(state, store, uploader, cfg.pair_window_secs)
        reconciler = Reconciler(pipeline, paths, interval_secs=cfg.reconcile_interval_secs)

        if cfg.once:
            delivered = reconciler.sweep()
            logger.info(f"Single sweep complete: {delivered} death(s) delivered")
            return 0

        signals = new_signal_queue()
        fs_observer = start_observer(paths, signals)
        try:
            # Catch up on anything written while the agent was not running
            reconciler.sweep()
            run_loop(signals, ScreenshotObserver(state, store), reconciler)
        finally:
            fs_observer.stop()
            fs_observer.join()

        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        if cfg.dev:
            logger.exception("Fatal error details")
        return 1

    finally:
        uploader.close()
        if locked:
            store.release_lock()


if __name__ == "__main__":
    sys.exit(main())
