"""Archive helpers for packaging prepared module directories."""
from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable
import gzip
import lzma
import os
import shutil
import tarfile
import tempfile

import zstandard as zstd

_SUFFIX_FORMATS: list[tuple[str, str]] = [
    (".tar.zst", "zst"),
    (".tzst", "zst"),
    (".tar.gz", "gztar"),
    (".tgz", "gztar"),
    (".tar.xz", "xztar"),
    (".txz", "xztar"),
    (".tar", "tar"),
]

_FORMAT_ALIASES: dict[str, str] = {
    "zst": "zst",
    "tar.zst": "zst",
    "tzst": "zst",
    "gztar": "gztar",
    "gz": "gztar",
    "tar.gz": "gztar",
    "tgz": "gztar",
    "xztar": "xztar",
    "xz": "xztar",
    "tar.xz": "xztar",
    "txz": "xztar",
    "tar": "tar",
}

_FORMAT_SUFFIXES: dict[str, str] = {
    "zst": ".tar.zst",
    "gztar": ".tar.gz",
    "xztar": ".tar.xz",
    "tar": ".tar",
}


@runtime_checkable
class ArchiveConsole(Protocol):
    """Minimal console interface required by :class:`ArchiveManager`."""

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


def resolve_archive_format(*, target: Path | None = None, format_hint: str | None = None) -> str:
    """Return the canonical archive format for ``format_hint`` or ``target``'s suffix."""

    if format_hint:
        normalized = format_hint.strip().lower().lstrip(".")
        if normalized in _FORMAT_ALIASES:
            return _FORMAT_ALIASES[normalized]
        raise ValueError(f"Unsupported archive format hint '{format_hint}'")

    if target is not None:
        filename = target.name.lower()
        for suffix, fmt in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
            if filename.endswith(suffix):
                return fmt

    raise ValueError(
        "Unable to determine archive format from target path. "
        "Provide an explicit format_hint or use a supported suffix."
    )


def archive_path_for(source_dir: Path, format_hint: str) -> Path:
    """Return the default archive path placed next to ``source_dir``."""

    archive_format = resolve_archive_format(format_hint=format_hint)
    return source_dir.with_name(f"{source_dir.name}{_FORMAT_SUFFIXES[archive_format]}")


class ArchiveManager:
    """Create reproducible compressed archives from directories.

    Members are added in sorted order with normalized ownership and
    timestamps, so identical module sets produce identical archives.
    """

    def __init__(self, console: ArchiveConsole, *, compression_level: int = 19) -> None:
        self._console = console
        self._compression_level = compression_level

    @staticmethod
    def _zstd_thread_count(source_size: int) -> int:
        cpu_count = os.cpu_count() or 1
        # Module sets are small; only split work beyond 32 MiB per thread.
        by_work = max(1, source_size // (32 * 1024 * 1024))
        return max(1, min(cpu_count, by_work, 8))

    def create_archive(
        self,
        *,
        source_dir: Path | str,
        target_path: Path | str,
        format_hint: str | None = None,
        overwrite: bool = True,
    ) -> Path:
        """Archive the contents of *source_dir* into *target_path*.

        Parameters
        ----------
        source_dir:
            Directory whose contents become the archive root.
        target_path:
            Exact path (including filename) of the archive to create.
        format_hint:
            Optional explicit format such as ``"zst"``. When omitted, the format
            is inferred from *target_path*'s suffix.
        overwrite:
            When ``False`` and the target already exists, a :class:`FileExistsError`
            is raised instead of replacing the file.
        """

        target = Path(target_path).expanduser()
        source = Path(source_dir).expanduser()

        if not source.is_dir():
            raise FileNotFoundError(f"Archive source directory '{source}' does not exist")

        archive_format = resolve_archive_format(target=target, format_hint=format_hint)

        if target.exists() and not overwrite:
            raise FileExistsError(f"Archive target '{target}' already exists")

        target.parent.mkdir(parents=True, exist_ok=True)

        temp_tar = self._create_pax_tar(root_dir=source, temp_dir=target.parent)
        try:
            if archive_format == "zst":
                self._compress_zst(temp_tar, target)
            elif archive_format == "gztar":
                with temp_tar.open("rb") as src, target.open("wb") as raw, gzip.GzipFile(
                    filename="", mode="wb", fileobj=raw, compresslevel=9, mtime=0
                ) as dst:
                    shutil.copyfileobj(src, dst)
            elif archive_format == "xztar":
                with temp_tar.open("rb") as src, lzma.open(target, "wb", preset=9) as dst:
                    shutil.copyfileobj(src, dst)
            else:
                shutil.copyfile(temp_tar, target)
        finally:
            temp_tar.unlink(missing_ok=True)

        self._console.info(f"Archived {source} to {target}")
        return target

    def _compress_zst(self, source: Path, target: Path) -> None:
        size = source.stat().st_size
        params = zstd.ZstdCompressionParameters.from_level(
            self._compression_level,
            source_size=size,
            threads=self._zstd_thread_count(size),
            write_checksum=True,
            write_content_size=True,
        )
        compressor = zstd.ZstdCompressor(compression_params=params)
        with source.open("rb") as src, target.open("wb") as dst:
            compressor.copy_stream(src, dst, size=size)

    @staticmethod
    def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
        info.uid = info.gid = 0
        info.uname = info.gname = "root"
        info.mtime = 0
        return info

    def _create_pax_tar(self, *, root_dir: Path, temp_dir: Path) -> Path:
        with tempfile.NamedTemporaryFile(dir=temp_dir, suffix=".tar", delete=False) as temp_handle:
            temp_path = Path(temp_handle.name)

        try:
            with tarfile.open(temp_path, mode="w", format=tarfile.PAX_FORMAT) as tar:
                for dirpath, dirnames, filenames in os.walk(root_dir):
                    dirnames.sort()
                    current = Path(dirpath)
                    relative = current.relative_to(root_dir)
                    if relative != Path("."):
                        tar.add(current, arcname=relative.as_posix(), recursive=False, filter=self._normalize)
                    for filename in sorted(filenames):
                        tar.add(
                            current / filename,
                            arcname=(relative / filename).as_posix(),
                            recursive=False,
                            filter=self._normalize,
                        )
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

        return temp_path


__all__ = [
    "ArchiveConsole",
    "ArchiveManager",
    "archive_path_for",
    "resolve_archive_format",
]
