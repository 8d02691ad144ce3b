"""
Context and Console classes for kmodprep.
"""
import sys
from dataclasses import dataclass

from core.command_runner import CommandRunner

from .settings import Settings


class Console:
    """Console output handler with configurable log level.

    Levels: none < error < warning < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warning": 2,
        "info": 3,
        "debug": 4,
    }

    RULE = "=" * 72

    def __init__(self, level: str = "info"):
        self.level_name = level
        self.level = self.LEVELS.get(level, self.LEVELS["info"])

    def header(self, title: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(self.RULE)
            print(title)
            print(self.RULE)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}")

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["warning"]:
            print(f"[WARNING] {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}")


@dataclass
class Context:
    console: Console
    runner: CommandRunner
    settings: Settings
