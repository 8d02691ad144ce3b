"""Name index over a kernel build staging directory."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, List
import os

MODULE_SUFFIX = ".ko"


def to_module_id(name: str) -> str:
    """Convert a declared dependency name (``foo``) to a module file name (``foo.ko``)."""

    name = name.strip()
    return name if name.endswith(MODULE_SUFFIX) else f"{name}{MODULE_SUFFIX}"


class StagingIndex:
    """Exact-filename lookup over a read-only module corpus.

    The tree is walked once; every regular file is indexed by its name.
    When a name occurs in several subdirectories the first one seen during
    the walk wins. Walk order follows the filesystem's directory order, so
    such collisions are ambiguous across filesystems; they are kept in
    :attr:`collisions` for reporting rather than resolved.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._paths: Dict[str, List[Path]] = {}
        self._modules: List[Path] = []
        self._build()

    def _build(self) -> None:
        for dirpath, _dirnames, filenames in os.walk(self.root):
            current = Path(dirpath)
            for filename in filenames:
                path = current / filename
                # find -type f semantics: symlinks are not module files
                if path.is_symlink() or not path.is_file():
                    continue
                self._paths.setdefault(filename, []).append(path)
                if filename.endswith(MODULE_SUFFIX):
                    self._modules.append(path)

    def lookup(self, name: str) -> Path | None:
        """Return the first file named ``name``, or ``None``."""

        matches = self._paths.get(name)
        return matches[0] if matches else None

    def find_all(self, name: str) -> List[Path]:
        return list(self._paths.get(name, ()))

    def __contains__(self, name: object) -> bool:
        return name in self._paths

    def module_files(self) -> Iterator[Path]:
        """Yield every ``.ko`` file in walk order."""

        return iter(self._modules)

    def first_module(self) -> Path | None:
        return self._modules[0] if self._modules else None

    @property
    def collisions(self) -> Dict[str, List[Path]]:
        """Module names that occur more than once in the corpus."""

        return {
            name: list(paths)
            for name, paths in self._paths.items()
            if len(paths) > 1 and name.endswith(MODULE_SUFFIX)
        }

    def __len__(self) -> int:
        return len(self._modules)
