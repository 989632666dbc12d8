"""Extraction of the latest death record from a DeathLogger SavedVariables file."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .lua_reader import evaluate_file_content, to_json_value

logger = logging.getLogger(__name__)

ROOT_GLOBAL = "DeathLoggerDB"
DEATHS_FIELD = "deaths"
INSTANCE_FIELDS = ("instanceID", "instanceName", "instanceDifficulty", "mapDifficultyID")


@dataclass
class DeathRecord:
    """One death as reported by the addon, ready for upload."""

    at: int
    player: str
    realm: str
    class_name: Optional[str] = None
    level: Optional[int] = None
    location: Any = None
    killer: Any = None
    bags: Any = None
    equipped: Any = None
    instance: Dict[str, Any] = field(default_factory=dict)
    money_copper: Optional[int] = None
    money_gold: Optional[int] = None
    money_silver: Optional[int] = None
    money_copper_only: Optional[int] = None

    @property
    def identity_key(self) -> str:
        return identity_key(self.player, self.realm)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the field names the upload endpoint expects."""
        return {
            "at": self.at,
            "player": self.player,
            "realm": self.realm,
            "class": self.class_name,
            "level": self.level,
            "location": self.location,
            "killer": self.killer,
            "bags": self.bags,
            "equipped": self.equipped,
            "instance": self.instance,
            "moneyCopper": self.money_copper,
            "moneyGold": self.money_gold,
            "moneySilver": self.money_silver,
            "moneyCopperOnly": self.money_copper_only,
        }


def identity_key(player: str, realm: str) -> str:
    return f"{player}@{realm}"


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def latest_entry(deaths: Dict[Any, Any]) -> Optional[Dict[Any, Any]]:
    """
    Pick the entry with the highest positive integer index.

    Keys need not be contiguous and dict order is not trusted; non-integer
    keys and non-table values are ignored.
    """
    max_index = 0
    latest = None
    for key, value in deaths.items():
        if isinstance(key, bool) or not isinstance(key, int):
            continue
        if isinstance(value, dict) and key > max_index:
            max_index = key
            latest = value
    return latest


def record_from_entry(entry: Dict[Any, Any]) -> DeathRecord:
    """Normalize one raw death entry into a DeathRecord."""
    at = _as_int(entry.get("at"))

    return DeathRecord(
        at=at if at is not None else 0,
        player=_as_str(entry.get("player")) or "",
        realm=_as_str(entry.get("realm")) or "",
        class_name=_as_str(entry.get("class")),
        level=_as_int(entry.get("level")),
        location=to_json_value(entry.get("location")),
        killer=to_json_value(entry.get("killer")),
        bags=to_json_value(entry.get("bags")),
        equipped=to_json_value(entry.get("equipped")),
        instance={name: to_json_value(entry.get(name)) for name in INSTANCE_FIELDS},
        money_copper=_as_int(entry.get("moneyCopper")),
        money_gold=_as_int(entry.get("moneyGold")),
        money_silver=_as_int(entry.get("moneySilver")),
        money_copper_only=_as_int(entry.get("moneyCopperOnly")),
    )


def parse_latest_death(content: str) -> Optional[DeathRecord]:
    """
    Evaluate SavedVariables content and return its most recent death.

    Returns:
        The latest DeathRecord, or None when the file holds no deaths

    Raises:
        LuaParseError: If the content cannot be evaluated (often a file caught mid-write)
    """
    env = evaluate_file_content(content)

    db = env.get(ROOT_GLOBAL)
    if not isinstance(db, dict):
        return None

    deaths = db.get(DEATHS_FIELD)
    if not isinstance(deaths, dict):
        return None

    entry = latest_entry(deaths)
    if entry is None:
        return None

    return record_from_entry(entry)


def read_latest_death(path: Path) -> Optional[DeathRecord]:
    """
    Read a SavedVariables file and return its most recent death.

    Raises:
        OSError: If the file cannot be read
        LuaParseError: If the content cannot be evaluated
    """
    content = Path(path).read_text(encoding="utf-8", errors="replace")
    record = parse_latest_death(content)
    if record is None:
        logger.debug(f"No death records in {path}")
    return record
