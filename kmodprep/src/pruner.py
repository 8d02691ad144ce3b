"""Set difference and partitioning between sibling deliverables."""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Tuple


@dataclass(frozen=True)
class PruneResult:
    kept: FrozenSet[str]
    removed: FrozenSet[str]

    @property
    def count(self) -> int:
        return len(self.removed)


def prune(modules: Iterable[str], exclusions: Iterable[str]) -> PruneResult:
    """Remove every excluded module from ``modules``."""

    module_set = frozenset(modules)
    removed = module_set & frozenset(exclusions)
    return PruneResult(kept=module_set - removed, removed=removed)


def partition(modules: Iterable[str], selection: Iterable[str]) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Split ``modules`` into (selected, remaining)."""

    result = prune(modules, selection)
    return result.removed, result.kept
