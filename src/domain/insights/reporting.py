"""Convert insight results into JSON-ready primitives."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
import json
from typing import Any


def to_payload(value: Any) -> Any:
    """Recursively convert dataclasses, enums and containers.

    Mapping keys become strings, tuples become lists and sets become sorted
    lists so repeated runs serialize identically.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {field.name: to_payload(getattr(value, field.name)) for field in fields(value)}
    if isinstance(value, dict):
        return {_payload_key(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return [to_payload(item) for item in sorted(value)]
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    raise TypeError(f"Unsupported payload value type: {type(value).__name__}")


def dumps_payload(value: Any, *, indent: int | None = 2) -> str:
    return json.dumps(to_payload(value), indent=indent, sort_keys=True)


def _payload_key(key: Any) -> str:
    if isinstance(key, Enum):
        return str(key.value)
    if isinstance(key, tuple):
        return "|".join(str(item) for item in key)
    return str(key)


__all__ = ["dumps_payload", "to_payload"]
