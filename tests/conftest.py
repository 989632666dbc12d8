"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path
from unittest.mock import Mock

import pytest

from deathlogger_agent.config import GamePaths
from deathlogger_agent.http_client import DeathUploader
from deathlogger_agent.pipeline import DeliveryPipeline
from deathlogger_agent.state import DeliveryState, StateStore

from tests.fixtures.savedvariables import write_saved_variables


@pytest.fixture
def game_paths(tmp_path) -> GamePaths:
    """A minimal retail install with one account and an empty Screenshots folder."""
    paths = GamePaths(tmp_path / "World of Warcraft", "_retail_")
    (paths.accounts_dir / "ACCOUNT1" / "SavedVariables").mkdir(parents=True)
    paths.screenshots_dir.mkdir(parents=True)
    return paths


@pytest.fixture
def sv_path(game_paths) -> Path:
    return game_paths.accounts_dir / "ACCOUNT1" / "SavedVariables" / "DeathLogger.lua"


@pytest.fixture
def write_sv(sv_path):
    """Write deaths into the account's SavedVariables file."""
    def _write(deaths, path=None):
        return write_saved_variables(path or sv_path, deaths)
    return _write


@pytest.fixture
def make_screenshot(game_paths):
    """Create a screenshot file with a given modification time."""
    def _make(name: str, mtime: int) -> Path:
        path = game_paths.screenshots_dir / name
        path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
        os.utime(path, (mtime, mtime))
        return path
    return _make


@pytest.fixture
def store(tmp_path) -> StateStore:
    return StateStore(tmp_path / "config" / "state.json")


@pytest.fixture
def state() -> DeliveryState:
    return DeliveryState()


@pytest.fixture
def uploader() -> Mock:
    return Mock(spec=DeathUploader)


@pytest.fixture
def pipeline(state, store, uploader) -> DeliveryPipeline:
    return DeliveryPipeline(state, store, uploader, pair_window_secs=120)
