# plugpm/core/logging/context.py
from __future__ import annotations
import contextlib
import contextvars

# Per-task log context (requestId, packageName, ...). asyncio tasks copy it on creation.
_logContextVar: contextvars.ContextVar[dict[str, object] | None] = contextvars.ContextVar("plugpm.logctx", default=None)

def setLogContext(**kvs):
    """Set or update per-log context values (requestId, packageName, etc.)."""
    current = dict(_logContextVar.get() or {}) # use copy
    for key, value in kvs.items():
        if value is not None:
            current[key] = value
    _logContextVar.set(current)

def getLogContext():
    """Return current context dict or None."""
    return _logContextVar.get()

@contextlib.contextmanager
def logContext(**kvs):
    """Temporarily extend the log context; the previous context is restored on exit."""
    token = _logContextVar.set(dict(_logContextVar.get() or {}))
    try:
        setLogContext(**kvs)
        yield
    finally:
        _logContextVar.reset(token)
