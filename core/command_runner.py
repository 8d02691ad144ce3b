"""Utilities for executing external kernel tools (modinfo, depmod, strip)."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import shutil
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """Raised when a command fails."""

    def __init__(self, result: CommandResult):
        message = (
            f"Command failed with exit code {result.returncode}: "
            f"{' '.join(map(shlex.quote, result.command))}"
        )
        if result.stderr.strip():
            message = f"{message}\nstderr: {result.stderr.strip()}"
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        raise NotImplementedError

    def available(self, program: str | Path) -> bool:
        """Return whether ``program`` can be executed."""

        path = Path(program)
        if path.parent != Path("."):
            return path.is_file() and os.access(path, os.X_OK)
        return shutil.which(str(program)) is not None

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`."""

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        process = subprocess.run(
            [str(part) for part in command],
            cwd=str(cwd) if cwd else None,
            env=self._merge_environment(env),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
        result = CommandResult(
            command=list(command),
            returncode=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
        )
        if check and result.returncode != 0:
            raise CommandError(result)
        return result


Handler = Callable[[List[str]], "CommandResult | str | None"]


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str] = field(default_factory=dict)


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``handlers`` maps a program name (the basename of ``command[0]``) to a
    callable producing the simulated outcome: a :class:`CommandResult`, the
    stdout text, or ``None`` for an empty successful run.
    """

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        self.commands: List[RecordedCommand] = []
        self._handlers: Dict[str, Handler] = dict(handlers or {})

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        parts = [str(part) for part in command]
        self.commands.append(
            RecordedCommand(command=parts, cwd=str(cwd) if cwd else None, env=dict(env) if env else {})
        )

        handler = self._handlers.get(Path(parts[0]).name)
        outcome = handler(parts) if handler else None
        if isinstance(outcome, CommandResult):
            result = outcome
        else:
            result = CommandResult(command=parts, returncode=0, stdout=outcome or "", stderr="")

        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def available(self, program: str | Path) -> bool:
        return Path(program).name in self._handlers or super().available(program)

    def programs(self) -> List[str]:
        return [Path(record.command[0]).name for record in self.commands]

    def iter_formatted(self) -> Iterable[str]:
        for record in self.commands:
            parts: List[str] = ["[recorded]"]
            if record.cwd:
                parts.append(f"(cwd={record.cwd})")
            parts.append(self.format_command(record.command))
            yield " ".join(parts)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
]
