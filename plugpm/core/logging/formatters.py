# plugpm/core/logging/formatters.py
from __future__ import annotations

import logging
from typing import Any

from plugpm.core.jsonutils import safeJsonDumps
from .context import getLogContext

__all__ = ["JsonFormatter", "DevFormatter"]

# Context keys promoted in both formats, in display order
_INSTALL_CONTEXT_KEYS = ("requestId", "packageName")



def _exceptionInfo(formatter: logging.Formatter, record: logging.LogRecord) -> dict[str, Any] | None:
    if not record.exc_info or record.exc_info[1] is None:
        return None
    err = record.exc_info[1]
    info: dict[str, Any] = {
        "type": type(err).__name__,
        "message": str(err),
        "stack": formatter.formatException(record.exc_info),
    }
    # PackageManagerError carries the package it failed for
    packageName = getattr(err, "packageName", None)
    if packageName:
        info["packageName"] = packageName
    return info



class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, for the rotating log file.

    Install context (request id, package name) is copied to the top level so
    a single install can be followed with a plain text filter.
    """
    def format(self, record: logging.LogRecord) -> str:
        ctx = getLogContext() or {}
        line: dict[str, Any] = {
            "ts": int(record.created * 1000),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _INSTALL_CONTEXT_KEYS:
            if ctx.get(key):
                line[key] = ctx[key]
        extra = {k: v for k, v in ctx.items() if k not in _INSTALL_CONTEXT_KEYS}
        if extra:
            line["ctx"] = extra
        line["pid"] = record.process

        exc = _exceptionInfo(self, record)
        if exc is not None:
            line["exc"] = exc
        return safeJsonDumps(line)



class DevFormatter(logging.Formatter):
    """Console lines: `LEVEL: [logger] message [requestId/packageName]`."""
    def format(self, record: logging.LogRecord) -> str:
        ctx = getLogContext() or {}
        tags = [str(ctx[key]) for key in _INSTALL_CONTEXT_KEYS if ctx.get(key)]
        suffix = f" [{'/'.join(tags)}]" if tags else ""

        parts = [f"{record.levelname}: [{record.name}] {record.getMessage()}{suffix}"]
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        if record.stack_info:
            parts.append(self.formatStack(record.stack_info))
        return "\n".join(parts)
