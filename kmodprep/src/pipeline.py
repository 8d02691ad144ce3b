"""
Deliverable pipelines: vendor_boot, vendor_dlkm and NetHunter-only module sets.

Each pipeline runs its stages once, in order:
seed collection -> closure -> pruning/partitioning -> strip -> depmod ->
load order -> output directory.
"""
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from core.archive import ArchiveManager, archive_path_for

from .context import Context
from .depfile import (extract_module_names, load_modules_dep,
                      read_module_list, restrict, write_module_list)
from .errors import Diagnostics, FatalInputError
from .kernel import (detect_kernel_version, module_tree, run_depmod,
                     stage_build_files)
from .load_order import InsertionResult, insert_order, topological_order
from .oracle import ModinfoOracle
from .pruner import partition, prune
from .resolver import ClosureResolver, ClosureResult
from .staging import MODULE_SUFFIX, StagingIndex
from .strip import StripReport, strip_modules

MODULES_LIST_NAME = "modules_list.txt"
PREVIEW_LINES = 10


@dataclass
class PipelineSummary:
    deliverable: str
    output_dir: Path
    kernel_version: str = ""
    seeds: int = 0
    auxiliary: int = 0
    dependencies_added: int = 0
    pruned: int = 0
    inserted: int = 0
    final_modules: int = 0
    load_entries: int = 0
    partitions: Dict[str, int] = field(default_factory=dict)
    strip_reports: List[StripReport] = field(default_factory=list)
    archive: Optional[Path] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def _require_file(path: Optional[Path], label: str) -> Path:
    if path is None or not path.is_file():
        raise FatalInputError(f"{label} not found: '{path}'")
    return path


def _require_dir(path: Optional[Path], label: str) -> Path:
    if path is None or not path.is_dir():
        raise FatalInputError(f"{label} not found: '{path}'")
    return path


def open_corpus(ctx: Context, diagnostics: Diagnostics) -> Tuple[StagingIndex, str]:
    """Index the staging directory and detect the kernel release it was built for."""
    staging_dir = _require_dir(ctx.settings.staging_dir, "Staging directory")
    staging = StagingIndex(staging_dir)
    first = staging.first_module()
    if first is None:
        raise FatalInputError(f"No {MODULE_SUFFIX} files found in staging directory")

    version = detect_kernel_version(ctx.runner, first)
    ctx.console.info(f"Detected kernel version: {version}")

    for name, paths in sorted(staging.collisions.items()):
        diagnostics.collisions[name] = len(paths)
        ctx.console.warning(f"{name} found {len(paths)} times in staging, using {paths[0]}")
    return staging, version


def collect_seeds(
    ctx: Context,
    staging: StagingIndex,
    names: Sequence[str],
    diagnostics: Diagnostics,
    existing: Optional[Mapping[str, Path]] = None,
) -> Dict[str, Path]:
    """Look up every name in staging; names not found are recorded, not fatal."""
    present = dict(existing or {})
    seeds: Dict[str, Path] = {}
    for name in names:
        if name in seeds or name in present:
            ctx.console.debug(f"  ↳ {name} already present, skipping")
            continue
        path = staging.lookup(name)
        if path is None:
            diagnostics.missing_seeds.append(name)
            ctx.console.warning(f"✗ Module not found in staging: {name}")
            continue
        seeds[name] = path
        ctx.console.info(f"✓ Found: {name}")
    return seeds


def auxiliary_modules(modules_dir: Path, *, recursive: bool = False) -> List[Path]:
    pattern = f"*{MODULE_SUFFIX}"
    found = modules_dir.rglob(pattern) if recursive else modules_dir.glob(pattern)
    return sorted((path for path in found if path.is_file()), key=lambda path: (path.name, str(path)))


def resolve_closure(
    ctx: Context,
    staging: StagingIndex,
    seeds: Mapping[str, Path],
    diagnostics: Diagnostics,
) -> ClosureResult:
    ctx.console.header("Resolving Dependencies")
    resolver = ClosureResolver(
        staging,
        ModinfoOracle(ctx.runner, ctx.console),
        max_rounds=ctx.settings.resolve_rounds,
        console=ctx.console,
    )
    closure = resolver.resolve(seeds)
    diagnostics.record_unresolved(closure.unresolved)
    if closure.capped:
        diagnostics.notes.append(
            f"dependency resolution stopped at the {closure.rounds}-round cap; the module set may be incomplete"
        )
    ctx.console.info(
        f"Dependency resolution complete after {closure.rounds} iterations - "
        f"{len(closure.modules)} modules ({len(closure.added)} added)"
    )
    return closure


def populate(
    collection: Mapping[str, Path],
    module_dir: Path,
    diagnostics: Diagnostics,
    console=None,
) -> FrozenSet[str]:
    """Copy the collection into ``module_dir``; return the names that were copied."""
    module_dir.mkdir(parents=True, exist_ok=True)
    copied = []
    for name in sorted(collection):
        try:
            shutil.copy2(collection[name], module_dir / name)
        except OSError as exc:
            diagnostics.copy_failures.append(name)
            if console:
                console.warning(f"✗ Failed to copy {name}: {exc}")
            continue
        copied.append(name)
    return frozenset(copied)


def prepare_tree(
    ctx: Context,
    staging: StagingIndex,
    base_dir: Path,
    module_dir: Path,
    system_map: Path,
    kernel_version: str,
    summary: PipelineSummary,
) -> Dict[str, List[str]]:
    """Strip, stage build files and run depmod; return the regenerated modules.dep mapping."""
    console = ctx.console
    strip_tool = ctx.settings.strip_tool
    if strip_tool is not None:
        console.header("Stripping Modules")
        report = strip_modules(ctx.runner, module_dir, strip_tool, console)
        if report is None:
            if str(strip_tool) not in summary.diagnostics.skipped_tools:
                summary.diagnostics.skipped_tools.append(str(strip_tool))
        else:
            summary.strip_reports.append(report)
    else:
        console.info("Strip tool not provided, skipping module stripping...")

    console.header("Preparing Build Environment")
    stage_build_files(staging, module_dir, console)

    console.header("Generating Module Dependencies")
    dep_file = run_depmod(ctx.runner, base_dir, system_map, kernel_version)
    console.info("Module dependencies generated successfully")
    return load_modules_dep(dep_file)


def synthesize_insertion(
    ctx: Context,
    module_dir: Path,
    members: FrozenSet[str],
    reference: Sequence[str],
    dep_map: Mapping[str, List[str]],
) -> InsertionResult:
    console = ctx.console
    console.header("Generating Optimized modules.load")
    result = insert_order(
        members,
        reference,
        restrict(dep_map, members),
        chain_aware=ctx.settings.chain_aware,
        console=console,
    )
    if result.inserted:
        console.info(f"Inserted {len(result.inserted)} new modules into the OEM order")
    else:
        console.info("No new modules to insert - using OEM subset")
    write_module_list(module_dir / "modules.load", result.order)
    return result


def reset_output(output_dir: Path) -> None:
    """Remove and recreate ``output_dir``."""
    try:
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)
    except OSError as exc:
        raise FatalInputError(f"Could not write output directory '{output_dir}': {exc}") from exc


def materialize(module_dir: Path, output_dir: Path, console=None) -> int:
    """Recreate ``output_dir`` with the modules and ``modules.*`` files; return the module count."""
    if console:
        console.header("Finalizing Output")
        console.info(f"Copying final module set to: {output_dir}")
    reset_output(output_dir)
    count = 0
    try:
        for path in sorted(module_dir.iterdir()):
            if not path.is_file():
                continue
            if path.suffix == MODULE_SUFFIX:
                count += 1
            elif not path.name.startswith("modules."):
                continue
            shutil.copy2(path, output_dir / path.name)
    except OSError as exc:
        raise FatalInputError(f"Could not write output directory '{output_dir}': {exc}") from exc
    return count


def archive_output(ctx: Context, output_dir: Path) -> Optional[Path]:
    if not ctx.settings.archive:
        return None
    target = archive_path_for(output_dir, ctx.settings.archive)
    return ArchiveManager(ctx.console).create_archive(
        source_dir=output_dir, target_path=target, format_hint=ctx.settings.archive
    )


def run_vendor_boot(ctx: Context) -> PipelineSummary:
    """vendor_boot: seed list and its closure, ordered against the OEM modules.load."""
    settings = ctx.settings
    console = ctx.console
    console.header("Vendor Boot Modules Preparation")

    modules_list = _require_file(settings.modules_list, "modules_list.txt")
    reference_file = _require_file(settings.load_order, "OEM modules.load file")
    system_map = _require_file(settings.system_map, "System.map file")
    output_dir = settings.output_dir or Path.cwd() / "vendor_boot_modules"

    summary = PipelineSummary(deliverable="vendor_boot", output_dir=output_dir)
    staging, version = open_corpus(ctx, summary.diagnostics)
    summary.kernel_version = version

    console.header("Copying Initial Module Set")
    seeds = collect_seeds(ctx, staging, read_module_list(modules_list), summary.diagnostics)
    summary.seeds = len(seeds)

    closure = resolve_closure(ctx, staging, seeds, summary.diagnostics)
    summary.dependencies_added = len(closure.added)

    with tempfile.TemporaryDirectory(prefix="kmodprep-") as work:
        base_dir = Path(work)
        module_dir = module_tree(base_dir, version)
        copied = populate(closure.modules, module_dir, summary.diagnostics, console)
        dep_map = prepare_tree(ctx, staging, base_dir, module_dir, system_map, version, summary)

        reference = read_module_list(reference_file)
        if settings.load_order_mode == "verbatim":
            console.header("Using OEM modules.load (No Modifications)")
            shutil.copyfile(reference_file, module_dir / "modules.load")
            summary.load_entries = len(reference)
        else:
            result = synthesize_insertion(ctx, module_dir, copied, reference, dep_map)
            summary.inserted = len(result.inserted)
            summary.load_entries = len(result.order)

        summary.final_modules = materialize(module_dir, output_dir, console)

    summary.archive = archive_output(ctx, output_dir)
    return summary


def run_vendor_dlkm(ctx: Context) -> PipelineSummary:
    """vendor_dlkm: seed list plus auxiliary modules, minus vendor_boot modules."""
    settings = ctx.settings
    console = ctx.console
    console.header("Vendor DLKM Modules Preparation")

    modules_list = _require_file(settings.modules_list, "modules_list.txt")
    reference_file = _require_file(settings.load_order, "OEM modules.load file")
    exclusion_file = _require_file(settings.vendor_boot_list, "Vendor boot modules list")
    system_map = _require_file(settings.system_map, "System.map file")
    output_dir = settings.output_dir or Path.cwd() / "vendor_dlkm_modules"

    aux_dir = settings.modules_dir
    if aux_dir is not None and not aux_dir.is_dir():
        console.warning(f"NetHunter module directory not found: '{aux_dir}', skipping...")
        aux_dir = None

    summary = PipelineSummary(deliverable="vendor_dlkm", output_dir=output_dir)
    diagnostics = summary.diagnostics
    staging, version = open_corpus(ctx, diagnostics)
    summary.kernel_version = version

    console.header("Copying Initial Module Set")
    seeds = collect_seeds(ctx, staging, read_module_list(modules_list), diagnostics)
    summary.seeds = len(seeds)

    if aux_dir is not None:
        console.header("Adding NetHunter Modules")
        names = [path.name for path in auxiliary_modules(aux_dir, recursive=True)]
        if not names:
            console.warning("No NetHunter modules found in specified directory")
        extra = collect_seeds(ctx, staging, names, diagnostics, existing=seeds)
        summary.auxiliary = len(extra)
        seeds.update(extra)
        console.info(f"Added {len(extra)} NetHunter modules")

    closure = resolve_closure(ctx, staging, seeds, diagnostics)
    summary.dependencies_added = len(closure.added)

    console.header("Pruning Vendor Boot Modules")
    pruned = prune(closure.module_set, read_module_list(exclusion_file))
    for name in sorted(pruned.removed):
        console.info(f"Pruning vendor_boot module: {name}")
    summary.pruned = pruned.count
    console.info(f"Pruned {pruned.count} vendor_boot modules, {len(pruned.kept)} remain")
    final = {name: closure.modules[name] for name in pruned.kept}

    with tempfile.TemporaryDirectory(prefix="kmodprep-") as work:
        base_dir = Path(work)
        module_dir = module_tree(base_dir, version)
        copied = populate(final, module_dir, diagnostics, console)
        dep_map = prepare_tree(ctx, staging, base_dir, module_dir, system_map, version, summary)

        result = synthesize_insertion(ctx, module_dir, copied, read_module_list(reference_file), dep_map)
        summary.inserted = len(result.inserted)
        summary.load_entries = len(result.order)

        summary.final_modules = materialize(module_dir, output_dir, console)

    summary.archive = archive_output(ctx, output_dir)
    return summary


def run_nethunter(ctx: Context) -> PipelineSummary:
    """NetHunter-only: auxiliary modules and their closure, split across both partitions."""
    settings = ctx.settings
    console = ctx.console
    console.header("NetHunter Module Extractor")

    modules_dir = _require_dir(settings.modules_dir, "NetHunter modules directory")
    system_map = _require_file(settings.system_map, "System.map file")
    boot_list_file = None
    if settings.vendor_boot_list is not None:
        boot_list_file = _require_file(settings.vendor_boot_list, "Vendor boot modules list")
    else:
        console.info("Vendor boot modules list not provided - will place all modules in vendor_dlkm only")
    output_dir = settings.output_dir or Path.cwd() / "nethunter_modules"

    summary = PipelineSummary(deliverable="nethunter", output_dir=output_dir)
    diagnostics = summary.diagnostics
    staging, version = open_corpus(ctx, diagnostics)
    summary.kernel_version = version

    console.header("Collecting NetHunter Modules")
    seeds: Dict[str, Path] = {}
    for path in auxiliary_modules(modules_dir):
        seeds.setdefault(path.name, path)
        console.info(f"✓ Found NetHunter module: {path.name}")
    if not seeds:
        raise FatalInputError(f"No NetHunter modules found in directory: {modules_dir}")
    summary.seeds = summary.auxiliary = len(seeds)

    closure = resolve_closure(ctx, staging, seeds, diagnostics)
    summary.dependencies_added = len(closure.added)

    console.header("Organizing Modules into Output Directories")
    if boot_list_file is not None:
        boot, dlkm = partition(closure.module_set, read_module_list(boot_list_file))
    else:
        boot, dlkm = frozenset(), closure.module_set
    console.info(f"Organized {len(boot)} modules into vendor_boot")
    console.info(f"Organized {len(dlkm)} modules into vendor_dlkm")

    reset_output(output_dir)

    for name, members in (("vendor_boot", boot), ("vendor_dlkm", dlkm)):
        if not members:
            continue
        console.header(f"Generating Module Dependencies and Load Order for {name}")
        base_dir = output_dir / name
        module_dir = module_tree(base_dir, version)
        collection = {module: closure.modules[module] for module in members}
        copied = populate(collection, module_dir, diagnostics, console)
        dep_map = prepare_tree(ctx, staging, base_dir, module_dir, system_map, version, summary)

        result = topological_order(
            copied, restrict(dep_map, copied), max_rounds=settings.order_rounds, console=console
        )
        if result.unplaced:
            diagnostics.notes.append(
                f"{name}: {len(result.unplaced)} modules appended without dependency ordering"
            )
        write_module_list(module_dir / "modules.load", result.order)
        shutil.copyfile(module_dir / "modules.load", module_dir / "modules.order")
        console.info(f"✓ Generated modules.load and modules.order for {name}")

        summary.partitions[name] = len(copied)
        summary.final_modules += len(copied)
        summary.load_entries += len(result.order)

    summary.archive = archive_output(ctx, output_dir)
    return summary


def run_extract(ctx: Context, modules_dep: Path) -> Path:
    """Write the sorted module names referenced by a stock modules.dep to modules_list.txt."""
    console = ctx.console
    console.header("Stock Modules List Extractor")
    dep_file = _require_file(modules_dep, "modules.dep file")
    output_dir = ctx.settings.output_dir or Path.cwd()
    _require_dir(output_dir, "Output directory")

    names = extract_module_names(dep_file.read_text(encoding="utf-8", errors="replace"))
    target = output_dir / MODULES_LIST_NAME
    write_module_list(target, names)

    console.info(f"Successfully extracted {len(names)} unique module names")
    console.info(f"Output saved to: {target}")
    for name in names[:PREVIEW_LINES]:
        console.debug(f"  {name}")
    if len(names) > PREVIEW_LINES:
        console.debug(f"  ... (and {len(names) - PREVIEW_LINES} more modules)")
    return target


def format_summary(summary: PipelineSummary) -> List[str]:
    """Render the end-of-run report, including aggregated recoverable diagnostics."""
    diagnostics = summary.diagnostics
    lines = [
        f"{summary.deliverable} module preparation complete",
        f"  - Kernel version:          {summary.kernel_version}",
        f"  - Seed modules:            {summary.seeds}",
    ]
    if summary.auxiliary:
        lines.append(f"  - Auxiliary modules added: {summary.auxiliary}")
    lines.extend(
        [
            f"  - Dependencies added:      {summary.dependencies_added}",
            f"  - Modules pruned:          {summary.pruned}",
            f"  - Modules inserted:        {summary.inserted}",
            f"  - Total modules:           {summary.final_modules}",
            f"  - Load order entries:      {summary.load_entries}",
        ]
    )
    for name, count in summary.partitions.items():
        lines.append(f"  - {name}: {count} modules")
    for report in summary.strip_reports:
        lines.append(f"  - Stripped: {report.processed} modules, {report.saved} bytes saved")
    lines.append(f"  - Output directory:        {summary.output_dir}")
    if summary.archive:
        lines.append(f"  - Archive:                 {summary.archive}")

    if diagnostics.missing_seeds:
        lines.append(f"Missing {len(diagnostics.missing_seeds)} modules from staging: {' '.join(diagnostics.missing_seeds)}")
    for dependency in sorted(diagnostics.unresolved):
        requesters = ", ".join(diagnostics.unresolved[dependency])
        lines.append(f"Unresolved dependency {dependency} (needed by {requesters})")
    for tool in diagnostics.skipped_tools:
        lines.append(f"Skipped unavailable tool: {tool}")
    if diagnostics.copy_failures:
        lines.append(f"Failed to copy {len(diagnostics.copy_failures)} modules: {' '.join(diagnostics.copy_failures)}")
    for name in sorted(diagnostics.collisions):
        lines.append(f"Ambiguous module name {name}: {diagnostics.collisions[name]} copies in staging")
    lines.extend(diagnostics.notes)
    return lines
