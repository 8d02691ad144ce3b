"""
Optional size reduction of module binaries with an external strip tool.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from core.command_runner import CommandError, CommandRunner

STRIP_ARGS = ["--strip-debug", "--strip-unneeded"]


@dataclass
class StripReport:
    processed: int = 0
    failed: List[str] = field(default_factory=list)
    bytes_before: int = 0
    bytes_after: int = 0

    @property
    def saved(self) -> int:
        return self.bytes_before - self.bytes_after


def strip_modules(
    runner: CommandRunner,
    module_dir: Path,
    strip_tool: Optional[Path],
    console=None,
) -> Optional[StripReport]:
    """Strip every ``.ko`` in ``module_dir``; ``None`` when the tool is unavailable."""
    if strip_tool is None or not runner.available(strip_tool):
        if console:
            console.warning(f"Strip tool not found or not executable: '{strip_tool}'. Skipping module stripping...")
        return None

    if console:
        console.info(f"Stripping modules in {module_dir.name} to reduce size...")

    report = StripReport()
    for module in sorted(module_dir.glob("*.ko")):
        size_before = module.stat().st_size
        report.bytes_before += size_before
        try:
            runner.run([str(strip_tool), *STRIP_ARGS, str(module)])
        except (CommandError, OSError) as exc:
            report.failed.append(module.name)
            if console:
                console.warning(f"  ✗ Failed to strip {module.name}: {exc}")
        else:
            report.processed += 1
        size_after = module.stat().st_size
        report.bytes_after += size_after
        if console and size_after < size_before:
            console.debug(f"  ✓ Stripped {module.name}: {size_before} → {size_after} bytes")

    if console:
        console.info(
            f"Strip complete: {report.processed} modules processed, {len(report.failed)} failed, "
            f"{report.saved} bytes saved ({report.saved / 1024:.1f}KB)"
        )
    return report
