"""
Builders for DeathLogger SavedVariables files as the game client writes them.

The serializer mirrors the client's layout: bracketed keys, one entry per
line, positional array entries followed by a `-- [n]` comment.
"""

from pathlib import Path
from typing import Any, Dict, Optional


def _lua_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _lua_key(key: Any) -> str:
    if isinstance(key, str):
        return f"[{_lua_string(key)}]"
    if isinstance(key, bool):
        return "[true]" if key else "[false]"
    return f"[{key}]"


def to_lua(value: Any, indent: int = 0) -> str:
    """Render a Python value as a Lua literal."""
    pad = "\t" * indent
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return _lua_string(value)
    if isinstance(value, list):
        lines = ["{"]
        for i, item in enumerate(value, start=1):
            lines.append(f"{pad}\t{to_lua(item, indent + 1)}, -- [{i}]")
        lines.append(f"{pad}}}")
        return "\n".join(lines)
    if isinstance(value, dict):
        lines = ["{"]
        for k, v in value.items():
            lines.append(f"{pad}\t{_lua_key(k)} = {to_lua(v, indent + 1)},")
        lines.append(f"{pad}}}")
        return "\n".join(lines)
    raise TypeError(f"Cannot render {type(value)!r} as Lua")


def make_death(
    at: int,
    player: str = "Thrall",
    realm: str = "Doomhammer",
    **extra: Any,
) -> Dict[str, Any]:
    """A death entry shaped like the ones the addon records."""
    death = {
        "at": at,
        "player": player,
        "realm": realm,
        "class": "SHAMAN",
        "level": 42,
        "location": {"mapID": 1411, "zone": "Durotar", "subzone": "Razor Hill", "x": 52.41, "y": 43.1},
        "killer": {"name": "Kul Tiras Marine", "guid": "Creature-0-1", "spellName": "Shoot"},
        "moneyCopper": 123456,
        "moneyGold": 12,
        "moneySilver": 34,
        "moneyCopperOnly": 56,
        "instanceName": "Durotar",
        "instanceDifficulty": 0,
    }
    death.update(extra)
    return death


def render_saved_variables(deaths: Dict[int, Dict[str, Any]], extra_root: Optional[Dict[str, Any]] = None) -> str:
    """Render a full DeathLogger.lua file with the given deaths keyed by index."""
    root: Dict[Any, Any] = {"deaths": deaths, "maxEntries": 200, "screenshotOn": True, "screenshotDelay": 0.5}
    if extra_root:
        root.update(extra_root)
    return "\nDeathLoggerDB = " + to_lua(root) + "\n"


def write_saved_variables(path: Path, deaths: Dict[int, Dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_saved_variables(deaths), encoding="utf-8")
    return path
