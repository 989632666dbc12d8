"""Command-line interface for the DeathLogger Agent."""

import argparse
from pathlib import Path
from typing import List, Optional

from .config import (
    KNOWN_BRANCHES,
    AgentConfig,
    default_config_dir,
    env_config_dir,
    env_dev_mode,
    load_settings_file,
    merge_settings,
    read_from_env,
    settings_path,
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="deathlogger-agent",
        description="DeathLogger Agent - uploads WoW deaths paired with their screenshots"
    )

    parser.add_argument(
        "--config-dir",
        type=Path,
        help="Directory holding config.toml, state.json and agent.log"
    )
    parser.add_argument(
        "--wow-root",
        type=Path,
        help="WoW root folder (contains _retail_/_classic_)"
    )
    parser.add_argument(
        "--branch",
        choices=KNOWN_BRANCHES,
        help="WoW branch to monitor (default: _retail_)"
    )
    parser.add_argument(
        "--api-url",
        help="Server upload URL"
    )
    parser.add_argument(
        "--api-token",
        help="Bearer token sent with every upload"
    )
    parser.add_argument(
        "--pair-window",
        type=int,
        help="Seconds between a death and a screenshot for them to be paired (default: 120)"
    )
    parser.add_argument(
        "--reconcile-interval",
        type=float,
        help="Seconds between reconciliation sweeps (default: 10.0)"
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        help="HTTP request timeout in seconds (default: 30.0)"
    )
    parser.add_argument(
        "--no-addon-update",
        action="store_true",
        help="Do not download the addon files at startup"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation sweep and exit"
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Enable development mode (verbose logging, repo-local state)"
    )

    return parser.parse_args(argv)


def build_config(ns: argparse.Namespace) -> AgentConfig:
    """
    Build AgentConfig from parsed arguments over the settings file and environment.

    Raises:
        ConfigError: If the resulting configuration is invalid
    """
    dev = ns.dev or env_dev_mode()

    if ns.config_dir:
        config_dir = ns.config_dir
    else:
        config_dir = env_config_dir() or default_config_dir(dev)

    settings = load_settings_file(settings_path(config_dir))

    cli_overrides = {
        "wow_root": ns.wow_root,
        "wow_branch": ns.branch,
        "api_url": ns.api_url,
        "api_token": ns.api_token,
        "pair_window_secs": ns.pair_window,
        "reconcile_interval_secs": ns.reconcile_interval,
        "http_timeout_secs": ns.http_timeout,
    }
    if ns.no_addon_update:
        cli_overrides["update_addon_on_start"] = False

    return merge_settings(
        config_dir,
        settings,
        read_from_env(),
        cli_overrides,
        dev=dev,
        once=ns.once,
    )
