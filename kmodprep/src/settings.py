"""Profile configuration for kmodprep pipelines."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping
import os

from core.archive import resolve_archive_format
from core.config_loader import load_section

CONFIG_ENV = "KMODPREP_CONFIG"

SECTIONS = {
    "vendor-boot": "vendor_boot",
    "vendor-dlkm": "vendor_dlkm",
    "nethunter": "nethunter",
    "extract": "extract",
}

LOAD_ORDER_MODES = ("insert", "verbatim")

_PATH_FIELDS = {
    "staging_dir",
    "system_map",
    "strip_tool",
    "modules_list",
    "load_order",
    "vendor_boot_list",
    "modules_dir",
    "output_dir",
}


@dataclass(slots=True)
class Settings:
    staging_dir: Path | None = None
    system_map: Path | None = None
    strip_tool: Path | None = None
    modules_list: Path | None = None
    load_order: Path | None = None
    vendor_boot_list: Path | None = None
    modules_dir: Path | None = None
    output_dir: Path | None = None
    load_order_mode: str = "insert"
    archive: str | None = None
    resolve_rounds: int = 10
    order_rounds: int = 50
    chain_aware: bool = False
    log_level: str = "info"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, root: Path | None = None) -> "Settings":
        """Build settings from a merged profile table.

        Relative paths are resolved against ``root`` (the profile's directory).
        """

        known = {item.name for item in fields(cls)}
        unknown = sorted(str(key) for key in data if key not in known and key not in ("resolve", "order"))
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key in ("resolve", "order"):
                continue
            if value is None or value == "":
                continue
            if key in _PATH_FIELDS:
                values[key] = _as_path(value, root)
            elif key in ("resolve_rounds", "order_rounds"):
                values[key] = _as_rounds(key, value)
            elif key == "chain_aware":
                values[key] = _as_bool(key, value)
            else:
                values[key] = str(value)

        # [resolve] max_rounds and [order] max_rounds / chain_aware tables.
        resolve_table = data.get("resolve")
        if isinstance(resolve_table, Mapping) and "max_rounds" in resolve_table:
            values["resolve_rounds"] = _as_rounds("resolve.max_rounds", resolve_table["max_rounds"])
        order_table = data.get("order")
        if isinstance(order_table, Mapping):
            if "max_rounds" in order_table:
                values["order_rounds"] = _as_rounds("order.max_rounds", order_table["max_rounds"])
            if "chain_aware" in order_table:
                values["chain_aware"] = _as_bool("order.chain_aware", order_table["chain_aware"])

        settings = cls(**values)
        settings.validate()
        return settings

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-``None`` override applied."""

        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key in _PATH_FIELDS:
                value = _as_path(value, None)
            changes[key] = value
        updated = replace(self, **changes)
        updated.validate()
        return updated

    def validate(self) -> None:
        if self.load_order_mode not in LOAD_ORDER_MODES:
            raise ValueError(
                f"load_order_mode must be one of {', '.join(LOAD_ORDER_MODES)}, got '{self.load_order_mode}'"
            )
        if self.resolve_rounds < 1 or self.order_rounds < 1:
            raise ValueError("Round caps must be positive integers")
        if self.archive:
            resolve_archive_format(format_hint=self.archive)


def _as_path(value: Any, root: Path | None) -> Path:
    path = Path(os.path.expanduser(str(value)))
    if root is not None and not path.is_absolute():
        path = root / path
    return path


def _as_rounds(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer")
    return value


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{key} must be true or false")
    return value


def load_settings(config_path: Path | None, command: str) -> Settings:
    """Load settings for ``command`` from the profile file, if any.

    The profile is taken from ``config_path`` or the ``KMODPREP_CONFIG``
    environment variable; without either, defaults are returned.
    """

    if config_path is None:
        env_value = os.environ.get(CONFIG_ENV)
        if not env_value:
            return Settings()
        config_path = Path(os.path.expanduser(env_value))

    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    section = SECTIONS.get(command, command)
    data = load_section(config_path, section, shared=("resolve", "order"))
    return Settings.from_mapping(data, root=config_path.resolve().parent)
