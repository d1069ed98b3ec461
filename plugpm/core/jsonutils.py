# plugpm/core/jsonutils.py
from __future__ import annotations

import json
from collections.abc import Mapping, Iterable
from dataclasses import is_dataclass, asdict
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

__all__ = ["safeJsonDumps", "prettyJsonDumps", "tryJSONify"]



def safeJsonDumps(obj: object) -> str:
    """
    Serializes an object to a compact JSON string.
    Uses deterministic separators (",", ":") and disallows NaN/infinity.
    UTF-8 characters are kept as-is.
    If direct JSON encoding fails, falls back to tryJSONify and retries.
    """
    try:
        return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError):
        # Paths, models, NaN and friends
        return json.dumps(tryJSONify(obj), ensure_ascii=False, allow_nan=False, separators=(",", ":"))



def prettyJsonDumps(obj: object) -> str:
    """Indented JSON for humans (CLI --json output)."""
    return json.dumps(tryJSONify(obj), ensure_ascii=False, indent=4)



def tryJSONify(obj: Any, _depth: int = 0, _maxDepth: int = 32) -> Any:
    """
    Best-effort conversion into JSON-compatible values.
    Pydantic models dump by alias, dataclasses via asdict, paths and enums
    as strings; anything unknown falls back to repr().
    """
    if _depth > _maxDepth:
        return "<max depth>"
    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return obj if obj == obj and obj not in (float("inf"), float("-inf")) else None
    if isinstance(obj, BaseModel):
        return tryJSONify(obj.model_dump(mode="json", by_alias=True), _depth + 1, _maxDepth)
    if is_dataclass(obj) and not isinstance(obj, type):
        return tryJSONify(asdict(obj), _depth + 1, _maxDepth)
    if isinstance(obj, Enum):
        return tryJSONify(obj.value, _depth + 1, _maxDepth)
    if isinstance(obj, Path):
        return obj.as_posix()
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Mapping):
        return {str(k): tryJSONify(v, _depth + 1, _maxDepth) for k, v in obj.items()}
    if isinstance(obj, (bytes, bytearray)):
        return f"<{len(obj)} bytes>"
    if isinstance(obj, Iterable):
        return [tryJSONify(v, _depth + 1, _maxDepth) for v in obj]
    return repr(obj)
