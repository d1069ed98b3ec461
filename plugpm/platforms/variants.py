# plugpm/platforms/variants.py
from __future__ import annotations

import platform

__all__ = [
    "UNKNOWN_VARIANT",
    "LIBRARY_EXTENSIONS",
    "currentVariant",
    "variantsToTry",
    "libraryExtension",
    "osFamily",
]



UNKNOWN_VARIANT = "unknown"

# platform.system() -> OS family used in variant tags
_OS_FAMILIES: dict[str, str] = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
}

# platform.machine() -> canonical architecture name
_ARCHES: dict[str, str] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv8": "arm64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
}

# Alternate spellings accepted for a canonical architecture
_ARCH_ALIASES: dict[str, tuple[str, ...]] = {
    "x86_64": ("amd64",),
    "amd64": ("x86_64",),
    "arm64": ("aarch64",),
    "aarch64": ("arm64",),
}

LIBRARY_EXTENSIONS: dict[str, str] = {
    "linux": ".so",
    "darwin": ".dylib",
    "windows": ".dll",
}



def osFamily(system: str | None = None) -> str | None:
    raw = (system if system is not None else platform.system()).strip().lower()
    return _OS_FAMILIES.get(raw)



def currentVariant(system: str | None = None, machine: str | None = None) -> str:
    """
    Variant tag for the running platform, e.g. "linux-x86_64" or
    "darwin-arm64". Returns "unknown" when the OS or CPU is unsupported.
    """
    family = osFamily(system)
    arch = _ARCHES.get((machine if machine is not None else platform.machine()).strip().lower())
    if family is None or arch is None:
        return UNKNOWN_VARIANT
    return f"{family}-{arch}"



def variantsToTry(system: str | None = None, machine: str | None = None) -> list[str]:
    """
    Ordered variant tags acceptable on this platform: the primary tag first,
    then architecture aliases within the same OS family
    ("linux-x86_64" -> ["linux-x86_64", "linux-amd64"]).
    """
    primary = currentVariant(system, machine)
    if primary == UNKNOWN_VARIANT:
        return [UNKNOWN_VARIANT]

    family, _, arch = primary.partition("-")
    tags = [primary]
    for alias in _ARCH_ALIASES.get(arch, ()):
        tag = f"{family}-{alias}"
        if tag not in tags:
            tags.append(tag)
    return tags



def libraryExtension(system: str | None = None) -> str:
    """Shared-library suffix for the OS family; ".so" when unknown."""
    family = osFamily(system)
    return LIBRARY_EXTENSIONS.get(family or "", ".so")
