# plugpm/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers
import sys
from pathlib import Path

from plugpm.app.settings import settings, settingsBool
from .formatters import DevFormatter, JsonFormatter

__all__ = [
    "NO_PROPAGATE",
    "LOG_FILE_MAX_BYTES",
    "LOG_FILE_BACKUPS",
    "configureLogging",
]

# Library loggers kept out of plugpm's handlers
NO_PROPAGATE = ["asyncio", "httpcore.connection", "httpcore.http11", "httpx"]

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5



def _fileHandler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        str(path),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    # The file always gets everything; the console level only filters the terminal
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JsonFormatter())
    return handler



def configureLogging(*, verbose: bool | None = None, jsonOutput: bool | None = None, logFile: str | Path | None = None):
    """
    Replace the root handlers with plugpm's.

    Console (stderr): DEBUG when verbose / debug.devModeEnabled, WARNING
    otherwise, since the CLI prints its own progress. JSON lines instead of
    the dev format when jsonOutput / logging.json is set.
    File (logFile / logging.file): rotating JSON log at DEBUG.

    Explicit arguments win over settings; None means "use the setting".
    """
    if verbose is None:
        verbose = settingsBool("debug.devModeEnabled", False)
    if jsonOutput is None:
        jsonOutput = settingsBool("logging.json", False)
    if logFile is None:
        logFile = settings("logging.file")
    consoleLevel = logging.DEBUG if verbose else logging.WARNING

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(consoleLevel)
    console.setFormatter(JsonFormatter() if jsonOutput else DevFormatter())
    handlers: list[logging.Handler] = [console]
    if logFile:
        handlers.append(_fileHandler(Path(logFile).expanduser()))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(min(h.level for h in handlers))
    for handler in handlers:
        root.addHandler(handler)

    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False
    logging.getLogger("httpx").setLevel(logging.WARNING)
