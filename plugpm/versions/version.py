# plugpm/versions/version.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

__all__ = [
    "ModuleVersion",
    "parseModuleVersion",
    "tryParseModuleVersion",
    "versionGE",
    "isNewerVersion",
]



_SEGMENT_RE = re.compile(r"\d+")



@total_ordering
@dataclass(frozen=True)
class ModuleVersion:
    """
    Dot-separated integer version ("1", "1.2", "1.10.0.3").

    Ordering compares segment by segment as integers. Missing trailing
    segments count as 0, so "1.2" == "1.2.0".
    """
    segments: tuple[int, ...]

    def __str__(self) -> str:
        return ".".join(str(seg) for seg in self.segments)

    def __repr__(self) -> str:
        return f"ModuleVersion({str(self)!r})"

    def _padded(self, length: int) -> tuple[int, ...]:
        return self.segments + (0,) * (length - len(self.segments))

    def _cmpPair(self, other: ModuleVersion) -> tuple[tuple[int, ...], tuple[int, ...]]:
        length = max(len(self.segments), len(other.segments))
        return self._padded(length), other._padded(length)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleVersion):
            return NotImplemented
        left, right = self._cmpPair(other)
        return left == right

    def __hash__(self) -> int:
        # Equal versions must hash equal regardless of trailing zeroes
        segments = list(self.segments)
        while segments and segments[-1] == 0:
            segments.pop()
        return hash(tuple(segments))

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ModuleVersion):
            return NotImplemented
        left, right = self._cmpPair(other)
        return left < right



def parseModuleVersion(raw: str) -> ModuleVersion:
    """
    Parse a dot-separated version string into ModuleVersion.

    Accepted forms (examples):
        "1"         -> (1,)
        "1.2"       -> (1, 2)
        "1.10.0"    -> (1, 10, 0)
        "v2.0.1"    -> (2, 0, 1)
        "1.2.3-rc1" -> (1, 2, 3)     # suffix after the numeric core is ignored
        "1.2.3+abc" -> (1, 2, 3)

    Rejected:
        "", ".1", "1.", "1..3", "abc"
    """
    if raw is None:
        raise ValueError("Version string cannot be None")

    if not isinstance(raw, str):
        raise TypeError(f"Version string must be a string type, got {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise ValueError("Version string cannot be empty or whitespace only")

    # Accept a single 'v' and remove it (v1.2.3 -> 1.2.3)
    if text[0] in ("v", "V") and len(text) > 1 and text[1].isdigit():
        text = text[1:]

    # Drop -prerelease / +build suffixes; only the numeric core is compared
    sepIndex = len(text)
    for ch in ("-", "+"):
        idx = text.find(ch)
        if idx != -1 and idx < sepIndex:
            sepIndex = idx
    core = text[:sepIndex]

    parts = core.split(".")
    if any(part == "" for part in parts):
        raise ValueError(f"Empty numeric component in version {raw!r}")

    segments: list[int] = []
    for part in parts:
        if not _SEGMENT_RE.fullmatch(part):
            raise ValueError(f"Invalid numeric component {part!r} in version {raw!r}")
        segments.append(int(part))

    return ModuleVersion(tuple(segments))



def tryParseModuleVersion(raw: object) -> ModuleVersion | None:
    if not isinstance(raw, str):
        return None
    try:
        return parseModuleVersion(raw)
    except ValueError:
        return None



def versionGE(left: str, right: str) -> bool:
    """True when `left` is numerically greater than or equal to `right`."""
    return parseModuleVersion(left) >= parseModuleVersion(right)



def isNewerVersion(incoming: str, installed: str) -> bool:
    """True only when `incoming` is strictly newer; equal versions are not newer."""
    return not versionGE(installed, incoming)
