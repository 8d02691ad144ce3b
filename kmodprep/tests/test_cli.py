from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
import io
import tempfile
import unittest
from unittest.mock import patch

from kmodprep.src import cli

from .toolchain import FakeToolchain, make_staging, write_lines


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.staging = make_staging(self.root, ["a.ko", "b.ko", "x.ko"])
        self.system_map = self.root / "System.map"
        self.system_map.write_text("ffffffc008000000 T _text\n", encoding="utf-8")
        self.modules_list = write_lines(self.root / "modules_list.txt", ["a.ko", "x.ko"])
        self.load_order = write_lines(self.root / "vendor_boot.modules.load", ["x.ko", "a.ko"])
        self.output = self.root / "vendor_boot_modules"
        self.runner = FakeToolchain({"a.ko": ["b.ko"]}).runner()
        patcher = patch("kmodprep.src.cli.SubprocessCommandRunner", return_value=self.runner)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _run(self, *args: str) -> tuple:
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            ret = cli.main(list(args))
        return ret, stdout.getvalue(), stderr.getvalue()

    def _vendor_boot_args(self) -> list:
        return [
            "vendor-boot",
            "--staging-dir", str(self.staging),
            "--system-map", str(self.system_map),
            "--modules-list", str(self.modules_list),
            "--load-order", str(self.load_order),
            "-o", str(self.output),
        ]

    def test_vendor_boot_command(self) -> None:
        ret, stdout, _ = self._run("--log", "error", *self._vendor_boot_args())

        self.assertEqual(ret, 0)
        self.assertEqual(
            (self.output / "modules.load").read_text(encoding="utf-8").splitlines(),
            ["x.ko", "b.ko", "a.ko"],
        )
        self.assertIn("vendor_boot module preparation complete", stdout)
        self.assertIn("depmod", self.runner.programs())

    def test_verbatim_flag(self) -> None:
        ret, _, _ = self._run("--log", "none", *self._vendor_boot_args(), "--verbatim-load-order")

        self.assertEqual(ret, 0)
        self.assertEqual((self.output / "modules.load").read_bytes(), self.load_order.read_bytes())

    def test_fatal_input_returns_one(self) -> None:
        ret, _, stderr = self._run(
            "vendor-boot",
            "--staging-dir", str(self.root / "absent"),
            "--system-map", str(self.system_map),
            "--modules-list", str(self.modules_list),
            "--load-order", str(self.load_order),
        )

        self.assertEqual(ret, 1)
        self.assertIn("[ERROR] Staging directory not found", stderr)

    def test_profile_supplies_paths(self) -> None:
        config = self.root / "kmodprep.toml"
        config.write_text(
            "\n".join(
                [
                    "[global]",
                    f'staging_dir = "{self.staging}"',
                    f'system_map = "{self.system_map}"',
                    'log_level = "none"',
                    "[vendor_boot]",
                    f'modules_list = "{self.modules_list}"',
                    f'load_order = "{self.load_order}"',
                    f'output_dir = "{self.output}"',
                ]
            ),
            encoding="utf-8",
        )

        ret, _, _ = self._run("-c", str(config), "vendor-boot")

        self.assertEqual(ret, 0)
        self.assertTrue((self.output / "modules.load").is_file())

    def test_invalid_profile_returns_two(self) -> None:
        config = self.root / "kmodprep.toml"
        config.write_text('[global]\nunknown_option = 1\n', encoding="utf-8")

        ret, _, stderr = self._run("-c", str(config), "vendor-boot")

        self.assertEqual(ret, 2)
        self.assertIn("Unknown configuration keys: unknown_option", stderr)

    def test_extract_command(self) -> None:
        dep_file = self.root / "modules.dep"
        dep_file.write_text("kernel/x.ko: kernel/a.ko\n", encoding="utf-8")

        ret, _, _ = self._run("--log", "none", "extract", str(dep_file), "-o", str(self.root))

        self.assertEqual(ret, 0)
        self.assertEqual((self.root / "modules_list.txt").read_text(encoding="utf-8"), "a.ko\nx.ko\n")

    def test_missing_subcommand_exits_with_usage_error(self) -> None:
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as raised:
            cli.main([])
        self.assertEqual(raised.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
