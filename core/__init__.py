"""Shared core utilities: external tool execution, profile loading and archiving."""

from .archive import ArchiveConsole, ArchiveManager, archive_path_for, resolve_archive_format
from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
    SubprocessCommandRunner,
)
from .config_loader import ConfigLoader, FILE_LOADERS, load_config_file, load_section, merge_mappings

__all__ = [
    "ArchiveConsole",
    "ArchiveManager",
    "archive_path_for",
    "resolve_archive_format",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "ConfigLoader",
    "FILE_LOADERS",
    "load_config_file",
    "load_section",
    "merge_mappings",
]
