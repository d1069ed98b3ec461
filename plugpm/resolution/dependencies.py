# plugpm/resolution/dependencies.py
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from plugpm.catalog.models import PackageRecord

logger = logging.getLogger(__name__)

__all__ = [
    "VisitState",
    "ResolutionResult",
    "resolveDependencies",
    "resolve",
]



class VisitState(Enum):
    VISITING = "visiting"   # On the current DFS path
    VISITED = "visited"     # Fully emitted



@dataclass(slots=True)
class ResolutionResult:
    """
    - packages: Install order. Every dependency precedes its dependents,
      no duplicates, first-seen order across roots.
    - missing: Names absent from the catalog, in first-seen order.
    - cycles: Back-edges that were cut, as (dependent, dependency).
    - warnings: Human-readable notes for the above.
    """
    packages: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    cycles: list[tuple[str, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)



def resolveDependencies(
    requestedNames: Iterable[str],
    catalog: Sequence[PackageRecord],
) -> ResolutionResult:
    """
    Expand requested package names into a dependency-first install order.

    Ordering rules:
        - Depth-first from each requested root, in request order.
        - Dependencies are walked in declaration order and emitted before
          the package that declares them.
        - A package is marked VISITING before its dependencies are walked.
          Meeting a VISITING package again means a cycle; that edge is cut
          (recorded, warned) and the walk continues, so A -> B -> A resolves
          to [B, A] for root A.
        - Names missing from the catalog are skipped with a warning and do
          not abort their siblings.
    """
    requested = list(requestedNames)
    byName: dict[str, PackageRecord] = {}
    for record in catalog:
        # First record wins, same as findByName
        byName.setdefault(record.name, record)

    states: dict[str, VisitState] = {}
    result = ResolutionResult()

    def visit(name: str, parent: str | None) -> None:
        state = states.get(name)
        if state is VisitState.VISITED:
            return
        if state is VisitState.VISITING:
            msg = f"Dependency cycle: {parent} -> {name}; edge ignored"
            logger.warning(msg)
            result.cycles.append((parent or name, name))
            result.warnings.append(msg)
            return

        record = byName.get(name)
        if record is None:
            if name not in result.missing:
                if parent is None:
                    msg = f"Package not found in catalog: {name}"
                else:
                    msg = f"Dependency not found in catalog: {name} (required by {parent})"
                logger.warning(msg)
                result.missing.append(name)
                result.warnings.append(msg)
            return

        states[name] = VisitState.VISITING
        for dep in record.dependencies:
            visit(dep, name)
        states[name] = VisitState.VISITED
        result.packages.append(name)

    for name in requested:
        if not isinstance(name, str) or not name.strip():
            continue
        visit(name.strip(), None)

    logger.debug("Resolved %s -> %s", requested, result.packages)
    return result



def resolve(requestedNames: Iterable[str], catalog: Sequence[PackageRecord]) -> list[str]:
    """Install order only; see resolveDependencies for details."""
    return resolveDependencies(requestedNames, catalog).packages
