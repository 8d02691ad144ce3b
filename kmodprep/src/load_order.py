"""Module load order synthesis.

Two strategies are provided:

* :func:`insert_order` keeps a prior authoritative order (the OEM
  ``modules.load``) and inserts modules it does not know about just before
  their earliest dependent.
* :func:`topological_order` places every module after its in-set
  dependencies when no reference order exists.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

DEFAULT_TOPOLOGICAL_ROUNDS = 50


@dataclass(frozen=True)
class InsertionResult:
    order: List[str]
    base: List[str]
    # module -> 1-based line of the filtered reference order it was inserted before; None means appended
    inserted: Dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def appended(self) -> List[str]:
        return [module for module, line in self.inserted.items() if line is None]


@dataclass(frozen=True)
class TopologicalResult:
    order: List[str]
    unplaced: Tuple[str, ...] = ()
    rounds: int = 0


def base_order(reference: Iterable[str], members: Iterable[str]) -> List[str]:
    """Filter ``reference`` to ``members``, keeping relative order and first occurrences."""

    member_set = frozenset(members)
    seen: set[str] = set()
    order: List[str] = []
    for module in reference:
        if module in member_set and module not in seen:
            seen.add(module)
            order.append(module)
    return order


def new_modules(members: Iterable[str], reference: Iterable[str]) -> List[str]:
    """Members absent from ``reference``, in natural enumeration order."""

    return sorted(frozenset(members) - frozenset(reference))


def dependents_of(dep_map: Mapping[str, Sequence[str]], members: FrozenSet[str]) -> Dict[str, List[str]]:
    """Invert ``dep_map`` (restricted to ``members``): dependency -> dependents."""

    dependents: Dict[str, List[str]] = {}
    for module, deps in dep_map.items():
        if module not in members:
            continue
        for dependency in deps:
            dependents.setdefault(dependency, []).append(module)
    return dependents


def _target_index(module: str, dependents: Mapping[str, List[str]], position: Mapping[str, int]) -> Optional[int]:
    lines = [position[dependent] for dependent in dependents.get(module, ()) if dependent in position]
    return min(lines) if lines else None


def insert_order(
    members: Iterable[str],
    reference: Sequence[str],
    dep_map: Mapping[str, Sequence[str]],
    *,
    chain_aware: bool = False,
    console=None,
) -> InsertionResult:
    """Merge new modules into the reference order.

    Every new module is placed strictly before the earliest module of the
    filtered reference order that depends on it, or appended when none does.
    Targets are computed against the filtered reference before any insertion,
    so dependencies between two new modules are not ordered relative to each
    other. ``chain_aware`` opts into propagating targets through new-module
    dependents as well.
    """

    member_set = frozenset(members)
    base = base_order(reference, member_set)
    fresh = new_modules(member_set, reference)
    position = {module: index for index, module in enumerate(base)}
    dependents = dependents_of(dep_map, member_set)

    targets: Dict[str, Optional[int]] = {
        module: _target_index(module, dependents, position) for module in fresh
    }

    if chain_aware:
        order = _chain_aware_order(base, fresh, targets, dependents, dep_map, console=console)
    else:
        order = list(base)
        rank = {module: index for index, module in enumerate(fresh)}
        # Descending target line, appends last; ties in reverse enumeration order.
        schedule = sorted(
            fresh,
            key=lambda module: (targets[module] is None, -(targets[module] or 0), -rank[module]),
        )
        for module in schedule:
            index = targets[module]
            if index is None:
                order.append(module)
            else:
                order.insert(index, module)

    inserted = {module: (None if index is None else index + 1) for module, index in targets.items()}
    if console:
        for module in fresh:
            line = inserted[module]
            if line is None:
                console.info(f"  Appending {module} (no dependents found)")
            else:
                console.info(f"  Inserting {module} at line {line} (before dependents)")
    return InsertionResult(order=order, base=base, inserted=inserted)


def _chain_aware_order(
    base: List[str],
    fresh: List[str],
    targets: Dict[str, Optional[int]],
    dependents: Mapping[str, List[str]],
    dep_map: Mapping[str, Sequence[str]],
    *,
    console=None,
) -> List[str]:
    fresh_set = frozenset(fresh)

    # A new module must also precede the target of every new module depending on it.
    changed = True
    while changed:
        changed = False
        for module in fresh:
            for dependent in dependents.get(module, ()):
                if dependent not in fresh_set:
                    continue
                candidate = targets[dependent]
                current = targets[module]
                if candidate is not None and (current is None or candidate < current):
                    targets[module] = candidate
                    changed = True

    groups: Dict[Optional[int], List[str]] = {}
    for module in fresh:
        groups.setdefault(targets[module], []).append(module)

    def _group_order(group: List[str]) -> List[str]:
        return topological_order(group, dep_map, console=console).order

    order: List[str] = []
    for index, module in enumerate(base):
        order.extend(_group_order(groups.get(index, [])))
        order.append(module)
    order.extend(_group_order(groups.get(None, [])))
    return order


def topological_order(
    members: Iterable[str],
    dep_map: Mapping[str, Sequence[str]],
    *,
    max_rounds: int = DEFAULT_TOPOLOGICAL_ROUNDS,
    console=None,
) -> TopologicalResult:
    """Place modules after their in-set dependencies.

    Each round scans the unplaced modules in enumeration order and places a
    module as soon as all of its in-set dependencies are placed; dependencies
    outside ``members`` count as satisfied. Rounds repeat while they place
    something, up to ``max_rounds``. Whatever is left (cycles, or the cap)
    is appended in enumeration order.
    """

    member_set = frozenset(members)
    pending = sorted(member_set)
    placed: set[str] = set()
    order: List[str] = []
    rounds = 0

    while pending and rounds < max_rounds:
        rounds += 1
        remaining: List[str] = []
        for module in pending:
            ready = all(
                dependency in placed
                for dependency in dep_map.get(module, ())
                if dependency in member_set
            )
            if ready:
                placed.add(module)
                order.append(module)
            else:
                remaining.append(module)
        if len(remaining) == len(pending):
            break
        pending = remaining

    if pending and console:
        console.warning(
            f"Could not order {len(pending)} modules by dependency (cycle or round cap), "
            f"appending: {' '.join(pending)}"
        )
    order.extend(pending)
    return TopologicalResult(order=order, unplaced=tuple(pending), rounds=rounds)
