"""Shared helpers for loading profile configuration mappings."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Sequence

import json
import tomllib

import yaml


ConfigLoader = Callable[[Any], Mapping[str, Any]]


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".yml": lambda stream: yaml.safe_load(stream),
}
"""Mapping of file suffixes to loader callables."""


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS)) or "<none>"
        raise ValueError(
            f"Unsupported configuration file extension: {suffix}. Supported: {supported}"
        )

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    with path.open(mode, **kwargs) as handle:
        data = loader(handle)

    # An empty YAML document decodes to None.
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge two mapping objects."""

    result: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = merge_mappings(existing, value)
        else:
            result[key] = value
    return result


def load_section(
    path: Path,
    section: str,
    *,
    base: str = "global",
    shared: Sequence[str] = (),
) -> Dict[str, Any]:
    """Return the ``base`` table of ``path`` overlaid with its ``section`` table.

    Top-level tables named in ``shared`` are attached under their own key,
    with any same-named table inside ``section`` taking precedence.
    """

    data = load_config_file(path)

    def _table(name: str, source: Mapping[str, Any]) -> Mapping[str, Any]:
        table = source.get(name, {})
        if not isinstance(table, Mapping):
            raise TypeError(f"Section '{name}' in '{path}' must be a mapping")
        return table

    merged: Dict[str, Any] = {}
    for name in (base, section):
        merged = merge_mappings(merged, _table(name, data))
    for name in shared:
        if name in data:
            merged[name] = merge_mappings(_table(name, data), _table(name, merged))
    return merged


__all__ = [
    "ConfigLoader",
    "FILE_LOADERS",
    "load_config_file",
    "load_section",
    "merge_mappings",
]
