# plugpm/core/ids.py
from __future__ import annotations

import uuid

__all__ = ["shortId"]



def shortId(prefix: str = "", length: int = 12) -> str:
    """Random hex id (UUIDv4 based), e.g. `shortId("req_")` -> `req_3f9a0c1b2d4e`."""
    if not 1 <= length <= 32:
        raise ValueError("length must be between 1 and 32")
    return f"{prefix}{uuid.uuid4().hex[:length]}"
