# plugpm/app/paths.py
from __future__ import annotations
import sys
from pathlib import Path



# Root directory structure constants
PACKAGE_DIR = Path(__file__).resolve().parent.parent # plugpm/
USER_DIR = Path("~/.plugpm").expanduser()            # per-user settings



def applicationDir() -> Path:
    """Directory of the running host executable (or script)."""
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else ""
    if argv0:
        return Path(argv0).resolve().parent
    return Path.cwd()



def defaultModulesDir(appDir: Path | None = None) -> Path:
    return (appDir or applicationDir()) / "bin" / "modules"



def deriveUiPluginsDir(modulesDir: Path) -> Path:
    # UI plugins live in a "plugins" directory next to the modules directory
    return modulesDir.parent / "plugins"
