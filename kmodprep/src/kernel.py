"""
Kernel toolchain steps: version detection, build files and depmod.
"""
import shutil
from pathlib import Path
from typing import List, Optional

from core.command_runner import CommandError, CommandRunner

from .errors import FatalGenerationError, FatalInputError
from .staging import StagingIndex

BUILD_FILE_MARKER = "modules.builtin"


def module_tree(base_dir: Path, kernel_version: str) -> Path:
    """Return ``<base>/lib/modules/<version>``, the layout depmod expects."""
    return base_dir / "lib" / "modules" / kernel_version


def detect_kernel_version(runner: CommandRunner, module: Path) -> str:
    """Read the kernel release from the ``vermagic`` field of ``module``."""
    try:
        result = runner.run(["modinfo", str(module)])
    except (CommandError, OSError) as exc:
        raise FatalInputError(f"Could not determine kernel version from {module.name}: {exc}") from exc

    for line in result.stdout.splitlines():
        if line.startswith("vermagic:"):
            fields = line.split()
            if len(fields) >= 2:
                return fields[1]
            break
    raise FatalInputError("Could not determine kernel version from modules")


def find_build_files_dir(staging: StagingIndex) -> Optional[Path]:
    """Directory holding ``modules.builtin`` under a ``lib/modules`` path in staging."""
    for candidate in staging.find_all(BUILD_FILE_MARKER):
        parts = candidate.parts
        for index in range(len(parts) - 2):
            if parts[index] == "lib" and parts[index + 1] == "modules":
                return candidate.parent
    return None


def stage_build_files(staging: StagingIndex, module_dir: Path, console=None) -> List[str]:
    """Copy ``modules.*`` metadata needed by depmod from staging into ``module_dir``."""
    source = find_build_files_dir(staging)
    if source is None:
        if console:
            console.warning("Could not find staging modules directory for build files")
        return []

    copied = []
    for path in sorted(source.glob("modules.*")):
        if not path.is_file():
            continue
        shutil.copy2(path, module_dir / path.name)
        copied.append(path.name)
    if console:
        console.info(f"Copied build files from {source}: {' '.join(copied)}")
    return copied


def run_depmod(runner: CommandRunner, base_dir: Path, system_map: Path, kernel_version: str) -> Path:
    """Regenerate ``modules.dep`` for the tree rooted at ``base_dir``."""
    command = ["depmod", "-b", str(base_dir), "-F", str(system_map), kernel_version]
    try:
        runner.run(command, cwd=base_dir)
    except CommandError as exc:
        raise FatalGenerationError(f"depmod failed with exit code {exc.result.returncode}") from exc
    except OSError as exc:
        raise FatalGenerationError(f"depmod could not be executed: {exc}") from exc

    dep_file = module_tree(base_dir, kernel_version) / "modules.dep"
    if not dep_file.is_file():
        raise FatalGenerationError(f"depmod did not produce {dep_file}")
    return dep_file
