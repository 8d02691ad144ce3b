"""Declared-dependency lookup for module binaries."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Protocol, Sequence

from core.command_runner import CommandError, CommandRunner


class DependencyOracle(Protocol):
    """Returns the declared dependency names of modules.

    Names are extension-less (``foo``), as modules declare them. A module
    whose metadata cannot be read has no dependencies.
    """

    def depends_batch(self, modules: Mapping[str, Path]) -> Dict[str, List[str]]:
        ...


def split_depends(text: str) -> List[str]:
    """Split a ``depends=`` value (``a,b,c``) into names."""

    names: List[str] = []
    for line in text.splitlines():
        for part in line.split(","):
            part = part.strip()
            if part:
                names.append(part)
    return names


class ModinfoOracle:
    """Reads ``depends`` from each module with ``modinfo -F depends``."""

    def __init__(self, runner: CommandRunner, console=None, *, modinfo: str = "modinfo"):
        self._runner = runner
        self._console = console
        self._modinfo = modinfo

    def depends(self, path: Path) -> List[str]:
        try:
            result = self._runner.run([self._modinfo, "-F", "depends", str(path)])
        except (CommandError, OSError) as exc:
            if self._console:
                self._console.debug(f"modinfo failed for {path.name}, assuming no dependencies: {exc}")
            return []
        return split_depends(result.stdout)

    def depends_batch(self, modules: Mapping[str, Path]) -> Dict[str, List[str]]:
        return {module: self.depends(path) for module, path in modules.items()}


class MappingOracle:
    """Oracle backed by pre-extracted metadata keyed by module file name."""

    def __init__(self, mapping: Mapping[str, Sequence[str]]):
        self._mapping = {module: list(deps) for module, deps in mapping.items()}
        self.queries: List[List[str]] = []

    def depends_batch(self, modules: Mapping[str, Path]) -> Dict[str, List[str]]:
        self.queries.append(list(modules))
        return {module: list(self._mapping.get(module, ())) for module in modules}
