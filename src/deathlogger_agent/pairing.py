"""Pairing of deaths with the screenshot taken closest to them."""

from typing import Iterable, Optional

from .state import PendingScreenshot


def find_nearest_screenshot(
    candidates: Iterable[PendingScreenshot],
    target_ts: int,
    window_secs: int,
) -> Optional[PendingScreenshot]:
    """
    Select the screenshot closest in time to a death.

    Args:
        candidates: Queued screenshots in arrival order
        target_ts: The death's "at" timestamp (epoch seconds)
        window_secs: Largest accepted distance in seconds

    Returns:
        The closest candidate within the window, the earliest-queued one on
        ties, or None if nothing is close enough
    """
    best = None
    best_dt = None
    for shot in candidates:
        dt = abs(shot.ts_epoch - target_ts)
        if dt > window_secs:
            continue
        if best_dt is None or dt < best_dt:
            best = shot
            best_dt = dt
    return best
