"""Thin orjson wrapper used for all wire and config serialization."""

from __future__ import annotations

from typing import Any

import orjson

JSONDecodeError = orjson.JSONDecodeError


def loads(data: bytes | bytearray | memoryview | str) -> Any:
    """Deserialize JSON from bytes or str."""
    return orjson.loads(data)


def dumps(obj: Any, *, indent: bool = False) -> bytes:
    """Serialize to compact JSON bytes (two-space indented when asked)."""
    option = orjson.OPT_NON_STR_KEYS
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, option=option)


def dumps_str(obj: Any, *, indent: bool = False) -> str:
    """Serialize to a JSON str."""
    return dumps(obj, indent=indent).decode("utf-8")
