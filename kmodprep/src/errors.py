"""Error types and recoverable diagnostics for kmodprep pipelines."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List


class KmodPrepError(RuntimeError):
    """Base class for conditions that abort a pipeline run."""

    exit_code = 1


class FatalInputError(KmodPrepError):
    """A mandatory input is missing or unusable (file, directory, empty corpus)."""


class FatalGenerationError(KmodPrepError):
    """Regenerating the dependency index failed; there is no usable modules.dep."""


@dataclass
class Diagnostics:
    """Recoverable conditions collected during a run and reported once at the end."""

    missing_seeds: List[str] = field(default_factory=list)
    unresolved: Dict[str, List[str]] = field(default_factory=dict)
    skipped_tools: List[str] = field(default_factory=list)
    collisions: Dict[str, int] = field(default_factory=dict)
    copy_failures: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def record_unresolved(self, unresolved: Dict[str, List[str]]) -> None:
        for dependency, requesters in unresolved.items():
            known = self.unresolved.setdefault(dependency, [])
            for requester in requesters:
                if requester not in known:
                    known.append(requester)

    def is_clean(self) -> bool:
        return not (
            self.missing_seeds or self.unresolved or self.skipped_tools or self.copy_failures or self.notes
        )
