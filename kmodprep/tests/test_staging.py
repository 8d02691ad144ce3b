from __future__ import annotations

from pathlib import Path
import os
import tempfile
import unittest

from kmodprep.src.staging import StagingIndex, to_module_id


class StagingIndexTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        for relative in (
            "lib/modules/6.1/kernel/drivers/net/wlan.ko",
            "lib/modules/6.1/kernel/net/cfg80211.ko",
            "dist/cfg80211.ko",
            "lib/modules/6.1/modules.builtin",
        ):
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"data")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_lookup_by_exact_name(self) -> None:
        index = StagingIndex(self.root)

        self.assertEqual(index.lookup("wlan.ko"), self.root / "lib/modules/6.1/kernel/drivers/net/wlan.ko")
        self.assertIsNone(index.lookup("wlan"))
        self.assertIsNone(index.lookup("missing.ko"))

    def test_duplicate_names_report_a_collision(self) -> None:
        index = StagingIndex(self.root)

        self.assertEqual(set(index.collisions), {"cfg80211.ko"})
        self.assertEqual(index.lookup("cfg80211.ko"), index.find_all("cfg80211.ko")[0])
        self.assertEqual(len(index.find_all("cfg80211.ko")), 2)

    def test_counts_only_module_files(self) -> None:
        index = StagingIndex(self.root)

        self.assertEqual(len(index), 3)
        self.assertIn("modules.builtin", index)
        self.assertTrue(all(path.suffix == ".ko" for path in index.module_files()))
        self.assertEqual(index.first_module().suffix, ".ko")

    def test_symlinks_are_skipped(self) -> None:
        os.symlink(self.root / "dist/cfg80211.ko", self.root / "dist/link.ko")

        index = StagingIndex(self.root)

        self.assertIsNone(index.lookup("link.ko"))

    def test_empty_tree_has_no_first_module(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            index = StagingIndex(Path(tmp))
            self.assertIsNone(index.first_module())
            self.assertEqual(len(index), 0)


class ModuleIdTests(unittest.TestCase):
    def test_appends_suffix(self) -> None:
        self.assertEqual(to_module_id("cfg80211"), "cfg80211.ko")
        self.assertEqual(to_module_id(" cfg80211.ko "), "cfg80211.ko")


if __name__ == "__main__":
    unittest.main()
