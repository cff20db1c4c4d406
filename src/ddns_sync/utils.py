"""Small parsing helpers shared by configuration and providers."""

from __future__ import annotations

import re
from typing import Any, List

_LIST_SPLIT_RE = re.compile(r"[,\s]+")


def parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_list(value: Any) -> List[str]:
    """Split a comma/whitespace separated string, or clean up a YAML list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return [item for item in _LIST_SPLIT_RE.split(str(value)) if item]


def parse_int(value: Any, *, default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    return int(str(value).strip())
