"""Transitive dependency closure over the staging corpus."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Tuple

from .oracle import DependencyOracle
from .staging import StagingIndex, to_module_id

DEFAULT_MAX_ROUNDS = 10


@dataclass(frozen=True)
class ClosureResult:
    modules: Mapping[str, Path]
    added: Tuple[str, ...]
    unresolved: Dict[str, List[str]] = field(default_factory=dict)
    rounds: int = 0
    capped: bool = False

    @property
    def module_set(self) -> FrozenSet[str]:
        return frozenset(self.modules)


class ClosureResolver:
    """Breadth-first fixed-point expansion of a seed module collection.

    Each round expands every module added by the previous round with one
    batched oracle query. A module is expanded at most once, so dependency
    cycles terminate on their own. Resolution stops when a round adds
    nothing or after ``max_rounds`` rounds; hitting the cap is reported but
    the partial collection is still returned.
    """

    def __init__(
        self,
        staging: StagingIndex,
        oracle: DependencyOracle,
        *,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        console=None,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._staging = staging
        self._oracle = oracle
        self._max_rounds = max_rounds
        self._console = console

    def _info(self, message: str) -> None:
        if self._console:
            self._console.info(message)

    def _warning(self, message: str) -> None:
        if self._console:
            self._console.warning(message)

    def resolve(self, seeds: Mapping[str, Path]) -> ClosureResult:
        collection: Dict[str, Path] = dict(seeds)
        expanded: set[str] = set()
        added: List[str] = []
        unresolved: Dict[str, List[str]] = {}
        worklist = sorted(collection)
        rounds = 0
        capped = False

        while worklist:
            if rounds >= self._max_rounds:
                capped = True
                self._warning(
                    f"Maximum iterations reached ({self._max_rounds}), stopping dependency resolution "
                    f"with {len(worklist)} modules unexpanded"
                )
                break

            rounds += 1
            batch = {module: collection[module] for module in worklist if module not in expanded}
            self._info(f"Dependency resolution iteration {rounds} ({len(batch)} modules)")
            answers = self._oracle.depends_batch(batch)

            discovered: List[str] = []
            for module in batch:
                expanded.add(module)
                for name in answers.get(module, ()):
                    dependency = to_module_id(name)
                    if dependency in collection:
                        continue
                    path = self._staging.lookup(dependency)
                    if path is None:
                        requesters = unresolved.setdefault(dependency, [])
                        if module not in requesters:
                            requesters.append(module)
                        self._warning(f"  ✗ Dependency not found in staging: {dependency} (needed by {module})")
                        continue
                    self._info(f"  ✓ Adding missing dependency: {dependency}")
                    collection[dependency] = path
                    added.append(dependency)
                    discovered.append(dependency)

            self._info(f"Iteration {rounds} complete - Added {len(discovered)} new dependencies")
            worklist = sorted(discovered)

        return ClosureResult(
            modules=collection,
            added=tuple(added),
            unresolved=unresolved,
            rounds=rounds,
            capped=capped,
        )
