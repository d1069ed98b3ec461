# plugpm/core/logging/__init__.py
from __future__ import annotations

from .context import setLogContext, getLogContext, logContext
from .setup import configureLogging

__all__ = [
    "configureLogging",
    "setLogContext",
    "getLogContext",
    "logContext",
]
