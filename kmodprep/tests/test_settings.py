from __future__ import annotations

from pathlib import Path
import os
import tempfile
import textwrap
import unittest
from unittest.mock import patch

from kmodprep.src.settings import CONFIG_ENV, Settings, load_settings


class LoadSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write(self, name: str, text: str) -> Path:
        path = self.root / name
        path.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")
        return path

    def test_toml_profile_merges_global_and_pipeline_sections(self) -> None:
        config = self._write(
            "kmodprep.toml",
            """
            [global]
            log_level = "warning"
            staging_dir = "out/staging"
            system_map = "/kernel/System.map"
            archive = "zst"

            [resolve]
            max_rounds = 4

            [order]
            max_rounds = 20
            chain_aware = true

            [vendor_boot]
            modules_list = "lists/modules_list.txt"
            load_order = "oem/vendor_boot.modules.load"
            load_order_mode = "verbatim"

            [vendor_dlkm]
            load_order = "oem/vendor_dlkm.modules.load"
            """,
        )

        settings = load_settings(config, "vendor-boot")

        self.assertEqual(settings.log_level, "warning")
        self.assertEqual(settings.staging_dir, self.root / "out/staging")
        self.assertEqual(settings.system_map, Path("/kernel/System.map"))
        self.assertEqual(settings.load_order, self.root / "oem/vendor_boot.modules.load")
        self.assertEqual(settings.load_order_mode, "verbatim")
        self.assertEqual(settings.archive, "zst")
        self.assertEqual(settings.resolve_rounds, 4)
        self.assertEqual(settings.order_rounds, 20)
        self.assertTrue(settings.chain_aware)

    def test_yaml_profile(self) -> None:
        config = self._write(
            "kmodprep.yaml",
            """
            global:
              staging_dir: /kernel/staging
            nethunter:
              modules_dir: nethunter
              output_dir: /tmp/nethunter_modules
            order:
              max_rounds: 12
            """,
        )

        settings = load_settings(config, "nethunter")

        self.assertEqual(settings.staging_dir, Path("/kernel/staging"))
        self.assertEqual(settings.modules_dir, self.root / "nethunter")
        self.assertEqual(settings.output_dir, Path("/tmp/nethunter_modules"))
        self.assertEqual(settings.order_rounds, 12)
        self.assertEqual(settings.resolve_rounds, 10)

    def test_unknown_key_is_rejected(self) -> None:
        config = self._write("kmodprep.toml", '[global]\nstagin_dir = "x"')

        with self.assertRaises(ValueError):
            load_settings(config, "vendor-boot")

    def test_rounds_must_be_integers(self) -> None:
        config = self._write("kmodprep.toml", '[resolve]\nmax_rounds = "ten"')

        with self.assertRaises(TypeError):
            load_settings(config, "vendor-boot")

    def test_chain_aware_must_be_boolean(self) -> None:
        config = self._write("kmodprep.yaml", 'order:\n  chain_aware: "false"')

        with self.assertRaises(TypeError):
            load_settings(config, "vendor-dlkm")

    def test_chain_aware_accepts_boolean(self) -> None:
        config = self._write("kmodprep.yaml", "order:\n  chain_aware: false")

        self.assertFalse(load_settings(config, "vendor-dlkm").chain_aware)

    def test_missing_profile_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_settings(self.root / "absent.toml", "vendor-boot")

    def test_environment_variable_selects_profile(self) -> None:
        config = self._write("env.toml", '[global]\nlog_level = "debug"')

        with patch.dict(os.environ, {CONFIG_ENV: str(config)}):
            settings = load_settings(None, "extract")

        self.assertEqual(settings.log_level, "debug")

    def test_defaults_without_profile(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings(None, "vendor-boot")

        self.assertEqual(settings, Settings())


class SettingsOverrideTests(unittest.TestCase):
    def test_none_values_do_not_override(self) -> None:
        settings = Settings(staging_dir=Path("/staging"), resolve_rounds=3)

        updated = settings.with_overrides(staging_dir=None, resolve_rounds=None, output_dir="~/out")

        self.assertEqual(updated.staging_dir, Path("/staging"))
        self.assertEqual(updated.resolve_rounds, 3)
        self.assertEqual(updated.output_dir, Path(os.path.expanduser("~/out")))

    def test_invalid_mode_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Settings().with_overrides(load_order_mode="shuffle")

    def test_invalid_archive_format_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Settings().with_overrides(archive="rar")

    def test_round_caps_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            Settings().with_overrides(order_rounds=0)


if __name__ == "__main__":
    unittest.main()
