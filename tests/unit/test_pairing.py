"""Tests for pairing deaths with screenshots."""

from deathlogger_agent.pairing import find_nearest_screenshot
from deathlogger_agent.state import PendingScreenshot


def shots(*timestamps):
    return [PendingScreenshot(f"/shots/{i}.jpg", ts) for i, ts in enumerate(timestamps)]


class TestFindNearestScreenshot:
    """Test the closest-within-window selection."""

    def test_selects_closest_within_window(self):
        """Test that 250 is chosen for target 260 with a 120s window."""
        best = find_nearest_screenshot(shots(100, 250, 400), 260, 120)
        assert best.ts_epoch == 250

    def test_none_when_outside_window(self):
        """Test that nothing is chosen when every screenshot is too far away."""
        assert find_nearest_screenshot(shots(100, 250, 400), 260, 5) is None
        assert find_nearest_screenshot(shots(100, 400), 260, 50) is None

    def test_window_is_inclusive(self):
        """Test that a distance equal to the window still pairs."""
        assert find_nearest_screenshot(shots(140), 260, 120).ts_epoch == 140

    def test_tie_prefers_first_queued(self):
        """Test that equidistant screenshots resolve to the earlier-queued one."""
        candidates = shots(270, 250)
        best = find_nearest_screenshot(candidates, 260, 120)
        assert best is candidates[0]

    def test_screenshot_before_or_after(self):
        """Test that screenshots taken after the death are considered too."""
        assert find_nearest_screenshot(shots(200, 262), 260, 120).ts_epoch == 262

    def test_empty_queue(self):
        """Test that an empty queue pairs nothing."""
        assert find_nearest_screenshot([], 260, 120) is None

    def test_does_not_mutate_candidates(self):
        """Test that selection leaves the queue untouched."""
        candidates = shots(100, 250)
        find_nearest_screenshot(candidates, 260, 120)
        assert [s.ts_epoch for s in candidates] == [100, 250]
