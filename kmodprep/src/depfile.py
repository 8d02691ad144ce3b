"""
Readers and writers for module lists and the ``modules.dep`` index.
"""
import posixpath
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

from .staging import MODULE_SUFFIX


def _basename(token: str) -> str:
    return posixpath.basename(token.strip())


def parse_module_list(text: str) -> List[str]:
    """Parse one module file name per line; whitespace and carriage returns are stripped."""
    modules = []
    for line in text.splitlines():
        name = line.strip()
        if name:
            modules.append(name)
    return modules


def read_module_list(path: Path) -> List[str]:
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as handle:
        return parse_module_list(handle.read())


def write_module_list(path: Path, modules: Iterable[str]) -> int:
    """Write ``modules`` one per line and return the number of entries."""
    entries = list(modules)
    with open(path, "w", encoding="utf-8") as handle:
        for module in entries:
            handle.write(f"{module}\n")
    return len(entries)


def parse_modules_dep(text: str) -> Dict[str, List[str]]:
    """
    Parse a depmod index (``kernel/a/foo.ko: kernel/b/bar.ko ...``) into a
    module -> dependencies mapping keyed by module basename.
    """
    dep_map: Dict[str, List[str]] = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        module, _, rest = line.partition(":")
        name = _basename(module)
        if not name:
            continue
        dep_map[name] = [_basename(token) for token in rest.split()]
    return dep_map


def load_modules_dep(path: Path) -> Dict[str, List[str]]:
    with open(path, "r", encoding="utf-8", errors="replace") as handle:
        return parse_modules_dep(handle.read())


def restrict(dep_map: Mapping[str, List[str]], members: Iterable[str]) -> Dict[str, List[str]]:
    """Keep only entries whose module is in ``members``."""
    keep = set(members)
    return {module: list(deps) for module, deps in dep_map.items() if module in keep}


def extract_module_names(text: str) -> List[str]:
    """
    Collect every module referenced by a ``modules.dep`` file, either as an
    entry or as a dependency, sorted and de-duplicated.
    """
    names = set()
    for token in text.replace(":", " ").split():
        if MODULE_SUFFIX in token:
            names.add(_basename(token))
    return sorted(names)
