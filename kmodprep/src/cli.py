"""Command line interface for kmodprep."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.command_runner import SubprocessCommandRunner

from .context import Console, Context
from .errors import KmodPrepError
from .pipeline import format_summary, run_extract, run_nethunter, run_vendor_boot, run_vendor_dlkm
from .settings import load_settings

PIPELINES = {
    "vendor-boot": run_vendor_boot,
    "vendor-dlkm": run_vendor_dlkm,
    "nethunter": run_nethunter,
}

# argparse dest -> Settings field
_OVERRIDES = {
    "staging_dir": "staging_dir",
    "system_map": "system_map",
    "strip_tool": "strip_tool",
    "modules_list": "modules_list",
    "load_order": "load_order",
    "vendor_boot_list": "vendor_boot_list",
    "modules_dir": "modules_dir",
    "output_dir": "output_dir",
    "archive": "archive",
    "resolve_rounds": "resolve_rounds",
    "order_rounds": "order_rounds",
}


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--staging-dir", type=Path, help="Kernel build staging directory")
    parser.add_argument("--system-map", type=Path, help="System.map of the built kernel (needed by depmod)")
    parser.add_argument("--strip-tool", type=Path, help="llvm-strip or compatible tool (optional)")
    parser.add_argument("-o", "--output-dir", type=Path, help="Output directory (recreated on every run)")
    parser.add_argument("--archive", metavar="FMT", help="Also archive the output directory (zst, gz, xz, tar)")
    parser.add_argument(
        "--resolve-rounds",
        type=int,
        metavar="N",
        help="Maximum dependency resolution rounds (default: 10)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kmodprep",
        description="Prepare vendor_boot / vendor_dlkm kernel module sets from a kernel build",
    )
    parser.add_argument("-c", "--config", type=Path, default=None, help="Profile file (TOML or YAML)")
    parser.add_argument(
        "-l",
        "--log",
        choices=list(Console.LEVELS),
        default=None,
        help="Set log level (default: info)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    extract = subparsers.add_parser("extract", help="Extract module names from a stock modules.dep")
    extract.add_argument("modules_dep", type=Path, help="Stock modules.dep file")
    extract.add_argument("-o", "--output-dir", type=Path, help="Where to write modules_list.txt (default: cwd)")

    vendor_boot = subparsers.add_parser("vendor-boot", help="Prepare vendor_boot modules")
    _add_common(vendor_boot)
    vendor_boot.add_argument("--modules-list", type=Path, help="modules_list.txt with the seed modules")
    vendor_boot.add_argument("--load-order", type=Path, help="OEM vendor_boot.modules.load")
    vendor_boot.add_argument(
        "--verbatim-load-order",
        action="store_true",
        help="Copy the OEM modules.load unchanged instead of inserting new modules",
    )
    vendor_boot.add_argument(
        "--chain-aware-order",
        action="store_true",
        help="Also order new modules that depend on each other",
    )

    vendor_dlkm = subparsers.add_parser("vendor-dlkm", help="Prepare vendor_dlkm modules")
    _add_common(vendor_dlkm)
    vendor_dlkm.add_argument("--modules-list", type=Path, help="modules_list.txt with the seed modules")
    vendor_dlkm.add_argument("--load-order", type=Path, help="OEM vendor_dlkm.modules.load")
    vendor_dlkm.add_argument("--vendor-boot-list", type=Path, help="vendor_boot modules list to prune")
    vendor_dlkm.add_argument("--modules-dir", type=Path, help="Additional (NetHunter) modules directory")
    vendor_dlkm.add_argument(
        "--chain-aware-order",
        action="store_true",
        help="Also order new modules that depend on each other",
    )

    nethunter = subparsers.add_parser("nethunter", help="Prepare NetHunter-only modules")
    _add_common(nethunter)
    nethunter.add_argument("--modules-dir", type=Path, help="NetHunter modules directory")
    nethunter.add_argument("--vendor-boot-list", type=Path, help="vendor_boot modules list (optional)")
    nethunter.add_argument(
        "--order-rounds",
        type=int,
        metavar="N",
        help="Maximum dependency ordering rounds (default: 50)",
    )

    return parser


def _collect_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = {field: getattr(args, dest, None) for dest, field in _OVERRIDES.items()}
    if getattr(args, "verbatim_load_order", False):
        overrides["load_order_mode"] = "verbatim"
    if getattr(args, "chain_aware_order", False):
        overrides["chain_aware"] = True
    if args.log:
        overrides["log_level"] = args.log
    elif args.verbose:
        overrides["log_level"] = "debug"
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    try:
        settings = load_settings(args.config, args.command).with_overrides(**_collect_overrides(args))
    except (ValueError, TypeError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    console = Console(level=settings.log_level)
    ctx = Context(console=console, runner=SubprocessCommandRunner(), settings=settings)

    try:
        if args.command == "extract":
            run_extract(ctx, args.modules_dep)
            return 0
        summary = PIPELINES[args.command](ctx)
    except KmodPrepError as exc:
        console.error(str(exc))
        return exc.exit_code

    console.header("Process Complete!")
    for line in format_summary(summary):
        print(line)
    return 0
