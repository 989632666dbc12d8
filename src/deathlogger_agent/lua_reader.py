"""
Tolerant evaluator for WoW SavedVariables files.

The game writes SavedVariables as a Lua chunk made only of global
assignments of literal values and table constructors:

    DeathLoggerDB = {
        ["deaths"] = {
            {
                ["at"] = 1700000000,
                ["player"] = "Thrall",
            }, -- [1]
        },
    }

This module evaluates that subset without an embedded Lua interpreter. Every
call to :meth:`LuaTableParser.evaluate` starts from an empty global
environment, so nothing leaks between reads. Tables are returned as plain
dicts keyed by the original Lua keys (int, float, bool or str); use
:func:`to_json_value` to turn them into JSON-shaped values.
"""

import re
from typing import Any, Dict, Tuple

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER = re.compile(
    r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
)
_LONG_BRACKET = re.compile(r"\[(=*)\[")
_PLAIN_RUN = {
    '"': re.compile(r'[^"\\\n]+'),
    "'": re.compile(r"[^'\\\n]+"),
}

_KEYWORDS = {
    "and", "break", "do", "else", "elseif", "end", "for", "function", "goto",
    "if", "in", "local", "not", "or", "repeat", "return", "then", "until", "while",
}

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "\n": "\n",
}


class LuaParseError(Exception):
    """Raised when a SavedVariables chunk cannot be evaluated (syntax error or truncated file)."""


class LuaTableParser:
    """Evaluates a SavedVariables chunk into a mapping of global names to values."""

    def __init__(self):
        self._globals: Dict[str, Any] = {}

    def evaluate(self, content: str) -> Dict[str, Any]:
        """
        Evaluate a chunk of global assignments.

        Args:
            content: The raw file content

        Returns:
            Mapping of every assigned global to its final value

        Raises:
            LuaParseError: If the chunk is not valid for the supported subset
        """
        self._globals = {}
        if content.startswith("\ufeff"):
            content = content[1:]

        pos = 0
        while True:
            pos = self._skip_whitespace(content, pos)
            if pos >= len(content):
                break

            if content[pos] == ";":
                pos += 1
                continue

            match = _IDENTIFIER.match(content, pos)
            if not match or match.group(0) in _KEYWORDS:
                raise LuaParseError(f"Expected a global assignment at position {pos}: {content[pos:pos + 20]!r}")
            name = match.group(0)
            pos = self._skip_whitespace(content, match.end())

            if not content.startswith("=", pos) or content.startswith("==", pos):
                raise LuaParseError(f"Expected '=' after {name} at position {pos}")

            value, pos = self._parse_value(content, pos + 1)
            if value is None:
                self._globals.pop(name, None)
            else:
                self._globals[name] = value

        return dict(self._globals)

    def _parse_value(self, content: str, pos: int) -> Tuple[Any, int]:
        """Parse a single expression at the given position."""
        pos = self._skip_whitespace(content, pos)

        if pos >= len(content):
            raise LuaParseError("Unexpected end of content")

        char = content[pos]

        if char == "{":
            return self._parse_table(content, pos)

        if char in "\"'":
            return self._parse_string(content, pos)

        if char == "[":
            return self._parse_long_string(content, pos)

        if char == "-":
            number_pos = self._skip_whitespace(content, pos + 1)
            value, end = self._parse_number(content, number_pos)
            return -value, end

        if char.isdigit() or (char == "." and content[pos + 1:pos + 2].isdigit()):
            return self._parse_number(content, pos)

        match = _IDENTIFIER.match(content, pos)
        if match:
            word = match.group(0)
            if word == "true":
                return True, match.end()
            if word == "false":
                return False, match.end()
            if word == "nil":
                return None, match.end()
            if word in _KEYWORDS:
                raise LuaParseError(f"Unsupported construct '{word}' at position {pos}")
            # A bare name reads a global assigned earlier in the same chunk
            return self._globals.get(word), match.end()

        raise LuaParseError(f"Cannot parse value at position {pos}: {content[pos:pos + 20]!r}")

    def _parse_table(self, content: str, start: int) -> Tuple[Dict[Any, Any], int]:
        """Parse a table constructor starting at '{'."""
        pos = start + 1
        result: Dict[Any, Any] = {}
        array_index = 1

        while True:
            pos = self._skip_whitespace(content, pos)
            if pos >= len(content):
                raise LuaParseError("Unexpected end of content in table")

            if content[pos] == "}":
                return result, pos + 1

            if content[pos] == "[" and not _LONG_BRACKET.match(content, pos):
                key, pos = self._parse_value(content, pos + 1)
                pos = self._expect(content, pos, "]")
                pos = self._expect(content, pos, "=")
                value, pos = self._parse_value(content, pos)
                if key is None:
                    raise LuaParseError(f"Table index is nil near position {pos}")
            else:
                named = self._match_field_name(content, pos)
                if named:
                    key, pos = named
                    value, pos = self._parse_value(content, pos)
                else:
                    value, pos = self._parse_value(content, pos)
                    key = array_index
                    array_index += 1

            if value is not None:
                result[_normalize_key(key)] = value

            pos = self._skip_whitespace(content, pos)
            if pos >= len(content):
                raise LuaParseError("Unexpected end of content in table")
            if content[pos] in ",;":
                pos += 1
            elif content[pos] != "}":
                raise LuaParseError(f"Expected ',' or '}}' at position {pos}")

    def _match_field_name(self, content: str, pos: int):
        """Match `name =` inside a table constructor; returns (key, position after '=') or None."""
        match = _IDENTIFIER.match(content, pos)
        if not match:
            return None
        after = self._skip_whitespace(content, match.end())
        if content.startswith("=", after) and not content.startswith("==", after):
            return match.group(0), after + 1
        return None

    def _parse_number(self, content: str, pos: int) -> Tuple[Any, int]:
        match = _NUMBER.match(content, pos)
        if not match:
            raise LuaParseError(f"Malformed number at position {pos}")

        token = match.group(0)
        if token[:2] in ("0x", "0X"):
            return int(token, 16), match.end()
        if "." in token or "e" in token or "E" in token:
            return float(token), match.end()
        return int(token), match.end()

    def _parse_string(self, content: str, pos: int) -> Tuple[str, int]:
        """Parse a quoted string, decoding Lua escape sequences."""
        quote = content[pos]
        plain_run = _PLAIN_RUN[quote]
        pos += 1
        # Escapes like \195\169 describe UTF-8 bytes, so collect bytes and decode once
        buf = bytearray()

        while pos < len(content):
            run = plain_run.match(content, pos)
            if run:
                buf.extend(run.group(0).encode("utf-8"))
                pos = run.end()
                if pos >= len(content):
                    break

            char = content[pos]

            if char == quote:
                return buf.decode("utf-8", errors="replace"), pos + 1

            if char == "\n":
                raise LuaParseError(f"Unfinished string at position {pos}")

            if pos + 1 >= len(content):
                break
            escape = content[pos + 1]

            if escape in _SIMPLE_ESCAPES:
                buf.extend(_SIMPLE_ESCAPES[escape].encode("utf-8"))
                pos += 2
            elif escape.isdigit():
                digits = re.match(r"\d{1,3}", content[pos + 1:pos + 4]).group(0)
                code = int(digits)
                if code > 255:
                    raise LuaParseError(f"Decimal escape too large at position {pos}")
                buf.append(code)
                pos += 1 + len(digits)
            elif escape == "x":
                hex_digits = content[pos + 2:pos + 4]
                if not re.fullmatch(r"[0-9a-fA-F]{2}", hex_digits):
                    raise LuaParseError(f"Invalid hexadecimal escape at position {pos}")
                buf.append(int(hex_digits, 16))
                pos += 4
            elif escape == "z":
                pos += 2
                while pos < len(content) and content[pos].isspace():
                    pos += 1
            elif escape == "\r":
                buf.extend(b"\n")
                pos += 2
                if content.startswith("\n", pos):
                    pos += 1
            else:
                raise LuaParseError(f"Invalid escape sequence '\\{escape}' at position {pos}")

        raise LuaParseError("Unterminated string")

    def _parse_long_string(self, content: str, pos: int) -> Tuple[str, int]:
        """Parse a long string [[...]] or [==[...]==]."""
        match = _LONG_BRACKET.match(content, pos)
        if not match:
            raise LuaParseError(f"Unexpected '[' at position {pos}")

        closing = "]" + match.group(1) + "]"
        end = content.find(closing, match.end())
        if end == -1:
            raise LuaParseError("Unterminated long string")

        body = content[match.end():end]
        # A newline right after the opening bracket is not part of the string
        if body.startswith("\r\n"):
            body = body[2:]
        elif body.startswith("\n"):
            body = body[1:]
        return body, end + len(closing)

    def _expect(self, content: str, pos: int, token: str) -> int:
        pos = self._skip_whitespace(content, pos)
        if not content.startswith(token, pos):
            if pos >= len(content):
                raise LuaParseError(f"Unexpected end of content, expected '{token}'")
            raise LuaParseError(f"Expected '{token}' at position {pos}")
        return pos + len(token)

    def _skip_whitespace(self, content: str, pos: int) -> int:
        """Skip whitespace and comments."""
        while pos < len(content):
            if content[pos].isspace():
                pos += 1
                continue

            if content.startswith("--", pos):
                block = _LONG_BRACKET.match(content, pos + 2)
                if block:
                    closing = "]" + block.group(1) + "]"
                    end = content.find(closing, block.end())
                    if end == -1:
                        raise LuaParseError("Unterminated block comment")
                    pos = end + len(closing)
                else:
                    end = content.find("\n", pos)
                    if end == -1:
                        return len(content)
                    pos = end + 1
                continue

            break

        return pos


def _normalize_key(key: Any) -> Any:
    # Lua treats t[1.0] and t[1] as the same slot
    if isinstance(key, float) and key.is_integer():
        return int(key)
    return key


def _key_to_str(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, float):
        return repr(key)
    return str(key)


def to_json_value(value: Any) -> Any:
    """
    Convert an evaluated Lua value into a JSON-shaped value.

    Scalars pass through unchanged. A non-empty table whose keys are all
    integers becomes a list ordered by key (gaps are closed up); every other
    table, including the empty one, becomes a dict with string keys.
    """
    if not isinstance(value, dict):
        return value

    if value and all(isinstance(k, int) and not isinstance(k, bool) for k in value):
        return [to_json_value(value[k]) for k in sorted(value)]

    return {_key_to_str(k): to_json_value(v) for k, v in value.items()}


def evaluate_file_content(content: str) -> Dict[str, Any]:
    """Evaluate a SavedVariables chunk in a fresh environment."""
    return LuaTableParser().evaluate(content)
