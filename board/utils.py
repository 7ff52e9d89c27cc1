"""Shared utility functions used across Board modules."""
from __future__ import annotations

import json
import random
from datetime import datetime
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def random_color(rng: random.Random | None = None) -> str:
    """Random ``#rrggbb`` display color."""
    value = (rng or random).randint(0, 0xFFFFFF)
    return f"#{value:06x}"


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
