"""Download of the DeathLogger addon into the game's AddOns folder."""

import logging
from pathlib import Path
from typing import Optional

import requests

from .config import GamePaths

logger = logging.getLogger(__name__)

RAW_TOC = "https://raw.githubusercontent.com/2Lynk/DeathLogger/main/Addon/DeathLogger.toc"
RAW_LUA = "https://raw.githubusercontent.com/2Lynk/DeathLogger/main/Addon/DeathLogger.lua"

ADDON_FILES = (
    (RAW_TOC, "DeathLogger.toc"),
    (RAW_LUA, "DeathLogger.lua"),
)


def download_to(session: requests.Session, url: str, dest: Path, timeout_secs: float = 30.0) -> None:
    """
    Fetch a URL into a file, creating parent directories.

    Raises:
        requests.RequestException: On network failure or a non-2xx response
    """
    response = session.get(url, timeout=timeout_secs)
    response.raise_for_status()

    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(response.content)


def install_or_update_addon(paths: GamePaths, session: Optional[requests.Session] = None,
                            timeout_secs: float = 30.0) -> Path:
    """
    Install or refresh the addon files.

    Returns:
        The addon directory
    """
    own_session = session is None
    session = session or requests.Session()

    try:
        paths.addon_dir.mkdir(parents=True, exist_ok=True)
        for url, name in ADDON_FILES:
            download_to(session, url, paths.addon_dir / name, timeout_secs)
    finally:
        if own_session:
            session.close()

    logger.info(f"Updated addon in {paths.addon_dir}")
    return paths.addon_dir
