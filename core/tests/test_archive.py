from __future__ import annotations

from pathlib import Path
import gzip
import io
import tarfile
import tempfile
import unittest
from unittest.mock import MagicMock

import zstandard

from core.archive import ArchiveManager, archive_path_for, resolve_archive_format


class ArchiveFormatTests(unittest.TestCase):
    def test_hint_aliases(self) -> None:
        self.assertEqual(resolve_archive_format(format_hint="tar.zst"), "zst")
        self.assertEqual(resolve_archive_format(format_hint=".tgz"), "gztar")
        self.assertEqual(resolve_archive_format(format_hint="XZ"), "xztar")

    def test_suffix_detection(self) -> None:
        self.assertEqual(resolve_archive_format(target=Path("modules.tar.zst")), "zst")
        self.assertEqual(resolve_archive_format(target=Path("modules.tar")), "tar")

    def test_unknown_hint_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            resolve_archive_format(format_hint="rar")

    def test_archive_path_is_a_sibling(self) -> None:
        self.assertEqual(
            archive_path_for(Path("/out/vendor_boot_modules"), "gz"),
            Path("/out/vendor_boot_modules.tar.gz"),
        )


class ArchiveManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.source = self.root / "vendor_dlkm"
        nested = self.source / "lib" / "modules" / "6.1.0"
        nested.mkdir(parents=True)
        (nested / "wlan.ko").write_bytes(b"\x7fELF wlan")
        (nested / "modules.load").write_text("wlan.ko\n", encoding="utf-8")
        self.console = MagicMock()
        self.manager = ArchiveManager(self.console, compression_level=3)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _members(self, data: bytes) -> dict:
        with tarfile.open(fileobj=io.BytesIO(data)) as archive:
            return {member.name: member for member in archive.getmembers()}

    def test_zst_archive_roundtrips(self) -> None:
        target = self.manager.create_archive(source_dir=self.source, target_path=self.root / "vendor_dlkm.tar.zst")

        members = self._members(zstandard.ZstdDecompressor().decompress(target.read_bytes()))

        self.assertIn("lib/modules/6.1.0/wlan.ko", members)
        self.assertEqual(members["lib/modules/6.1.0/wlan.ko"].mtime, 0)
        self.assertEqual(members["lib/modules/6.1.0/wlan.ko"].uname, "root")
        self.console.info.assert_called_once()

    def test_gz_archive_is_reproducible(self) -> None:
        target = self.root / "vendor_dlkm.tar.gz"
        first = self.manager.create_archive(source_dir=self.source, target_path=target, format_hint="gz").read_bytes()
        second = self.manager.create_archive(source_dir=self.source, target_path=target, format_hint="gz").read_bytes()

        self.assertEqual(first, second)
        self.assertIn("lib/modules/6.1.0/modules.load", self._members(gzip.decompress(first)))

    def test_refuses_to_overwrite_when_asked(self) -> None:
        target = self.root / "vendor_dlkm.tar"
        target.write_bytes(b"")

        with self.assertRaises(FileExistsError):
            self.manager.create_archive(source_dir=self.source, target_path=target, overwrite=False)

    def test_missing_source_is_rejected(self) -> None:
        with self.assertRaises(FileNotFoundError):
            self.manager.create_archive(source_dir=self.root / "absent", target_path=self.root / "x.tar")


if __name__ == "__main__":
    unittest.main()
