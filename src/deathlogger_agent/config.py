"""Configuration management for the DeathLogger Agent."""

import os
import platform
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

KNOWN_BRANCHES = ("_retail_", "_classic_", "_classic_era_", "_classic_ptr_")
ADDON_NAME = "DeathLogger"
SAVED_VARIABLES_FILENAME = f"{ADDON_NAME}.lua"
DEFAULT_API_URL = "https://your-server.example/upload"


class ConfigError(Exception):
    """Raised when the agent cannot start with the given configuration."""


@dataclass
class AgentConfig:
    """Configuration for the agent."""

    wow_root: Path
    config_dir: Path
    wow_branch: str = "_retail_"
    api_url: str = DEFAULT_API_URL
    api_token: str = ""
    pair_window_secs: int = 120
    update_addon_on_start: bool = True
    start_with_windows: bool = False
    reconcile_interval_secs: float = 10.0
    http_timeout_secs: float = 30.0
    dev: bool = False
    once: bool = False

    @property
    def paths(self) -> "GamePaths":
        return GamePaths(self.wow_root, self.wow_branch)


@dataclass(frozen=True)
class GamePaths:
    """Locations inside a WoW installation for one game branch."""

    root: Path
    branch: str = field(default="_retail_")

    @property
    def branch_root(self) -> Path:
        return self.root / self.branch

    @property
    def addons_dir(self) -> Path:
        return self.branch_root / "Interface" / "AddOns"

    @property
    def addon_dir(self) -> Path:
        return self.addons_dir / ADDON_NAME

    @property
    def screenshots_dir(self) -> Path:
        return self.branch_root / "Screenshots"

    @property
    def accounts_dir(self) -> Path:
        return self.branch_root / "WTF" / "Account"

    def saved_variables_patterns(self) -> List[str]:
        """Glob patterns (relative to accounts_dir) for account-wide and per-character files."""
        return [
            f"*/SavedVariables/{SAVED_VARIABLES_FILENAME}",
            f"*/*/*/SavedVariables/{SAVED_VARIABLES_FILENAME}",
        ]


def default_config_dir(dev: bool) -> Path:
    """Get the default settings/state directory based on platform and dev mode."""
    if dev:
        return Path(".deathlogger")

    if platform.system().lower() == "windows":
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "DeathLoggerAgent"

    return Path.home() / ".local" / "share" / "DeathLoggerAgent"


def settings_path(config_dir: Path) -> Path:
    return Path(config_dir) / "config.toml"


def state_path(cfg: AgentConfig) -> Path:
    return cfg.config_dir / "state.json"


def log_path(cfg: AgentConfig) -> Path:
    return cfg.config_dir / "agent.log"


def load_settings_file(path: Path) -> Dict[str, Any]:
    """
    Read the settings file written by the setup wizard.

    Args:
        path: Path to config.toml

    Returns:
        Mapping of settings, empty if the file does not exist

    Raises:
        ConfigError: If the file exists but cannot be read or parsed
    """
    if not path.exists():
        return {}

    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}")


def read_from_env() -> Dict[str, Any]:
    """Read configuration overrides from environment variables."""
    overrides: Dict[str, Any] = {}

    if os.getenv("DEATHLOGGER_WOW_ROOT"):
        overrides["wow_root"] = os.getenv("DEATHLOGGER_WOW_ROOT")
    if os.getenv("DEATHLOGGER_BRANCH"):
        overrides["wow_branch"] = os.getenv("DEATHLOGGER_BRANCH")
    if os.getenv("DEATHLOGGER_API_URL"):
        overrides["api_url"] = os.getenv("DEATHLOGGER_API_URL")
    if os.getenv("DEATHLOGGER_API_TOKEN") is not None:
        overrides["api_token"] = os.getenv("DEATHLOGGER_API_TOKEN")

    pair_window = os.getenv("DEATHLOGGER_PAIR_WINDOW")
    if pair_window:
        try:
            overrides["pair_window_secs"] = int(pair_window)
        except ValueError:
            raise ConfigError(f"Invalid DEATHLOGGER_PAIR_WINDOW: {pair_window} (must be an integer)")

    return overrides


def env_dev_mode() -> bool:
    return os.getenv("DEATHLOGGER_DEV", "false").lower() == "true"


def env_config_dir() -> Optional[Path]:
    value = os.getenv("DEATHLOGGER_CONFIG_DIR")
    return Path(value) if value else None


def merge_settings(config_dir: Path, *layers: Dict[str, Any], **extra: Any) -> AgentConfig:
    """
    Build an AgentConfig from settings layers, later layers taking precedence.

    Keys that are not AgentConfig fields (such as the wizard's own bookkeeping)
    are ignored.

    Raises:
        ConfigError: If the merged configuration is invalid
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged.update({k: v for k, v in layer.items() if v is not None})
    merged.update({k: v for k, v in extra.items() if v is not None})

    wow_root = merged.get("wow_root")
    if not wow_root:
        raise ConfigError(
            f"No WoW root folder configured. Set wow_root in {settings_path(config_dir)}, "
            "DEATHLOGGER_WOW_ROOT or --wow-root"
        )

    known = set(AgentConfig.__dataclass_fields__) - {"wow_root", "config_dir"}
    kwargs = {k: v for k, v in merged.items() if k in known}

    try:
        cfg = AgentConfig(wow_root=Path(wow_root), config_dir=Path(config_dir), **kwargs)
        cfg.pair_window_secs = int(cfg.pair_window_secs)
        cfg.reconcile_interval_secs = float(cfg.reconcile_interval_secs)
        cfg.http_timeout_secs = float(cfg.http_timeout_secs)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")

    validate(cfg)
    return cfg


def validate(cfg: AgentConfig) -> None:
    """Raise ConfigError for settings the agent cannot run with."""
    if not cfg.wow_root.exists():
        raise ConfigError(f"WoW root folder does not exist: {cfg.wow_root}")
    if not cfg.wow_root.is_dir():
        raise ConfigError(f"WoW root is not a directory: {cfg.wow_root}")
    if cfg.wow_branch not in KNOWN_BRANCHES:
        raise ConfigError(
            f"Unknown WoW branch: {cfg.wow_branch} (expected one of {', '.join(KNOWN_BRANCHES)})"
        )
    if not cfg.api_url:
        raise ConfigError("Upload URL must not be empty")
    if cfg.pair_window_secs < 0:
        raise ConfigError(f"Pairing window must not be negative: {cfg.pair_window_secs}")
    if cfg.reconcile_interval_secs <= 0:
        raise ConfigError(f"Reconcile interval must be positive: {cfg.reconcile_interval_secs}")


def ensure_dirs(cfg: AgentConfig) -> Path:
    """
    Create the settings/state directory with appropriate permissions.

    Raises:
        ConfigError: If the directory cannot be created
    """
    try:
        cfg.config_dir.mkdir(parents=True, exist_ok=True)
        if platform.system().lower() != "windows":
            cfg.config_dir.chmod(0o700)
    except OSError as e:
        raise ConfigError(f"Cannot create settings directory {cfg.config_dir}: {e}")

    return cfg.config_dir
