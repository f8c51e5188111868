"""Suffix-keyed helpers for reading and writing specification files."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Mapping, TextIO

import json
import tomllib

import yaml


ConfigLoader = Callable[[Any], Mapping[str, Any]]
ConfigDumper = Callable[[Mapping[str, Any], TextIO], None]


def _load_yaml(stream: Any) -> Mapping[str, Any]:
    try:
        return yaml.safe_load(stream)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML: {exc}") from exc


def _dump_yaml(data: Mapping[str, Any], stream: TextIO) -> None:
    yaml.safe_dump(dict(data), stream, sort_keys=False, default_flow_style=False)


def _dump_json(data: Mapping[str, Any], stream: TextIO) -> None:
    json.dump(data, stream, indent=2)
    stream.write("\n")


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}
"""Mapping of file suffixes to loader callables."""

FILE_DUMPERS: Dict[str, ConfigDumper] = {
    ".json": _dump_json,
    ".yaml": _dump_yaml,
    ".yml": _dump_yaml,
}
"""Mapping of file suffixes to writer callables; TOML is read-only."""


def register_loader(suffix: str, loader: ConfigLoader) -> None:
    """Register ``loader`` for files ending with ``suffix``."""

    normalized = suffix.lower()
    if not normalized.startswith("."):
        raise ValueError("Suffix must start with '.'")
    FILE_LOADERS[normalized] = loader


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

    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def dump_config_file(data: Mapping[str, Any], path: Path) -> None:
    """Encode ``data`` into ``path`` using the writer registered for its suffix."""

    suffix = path.suffix.lower()
    dumper = FILE_DUMPERS.get(suffix)
    if dumper is None:
        supported = ", ".join(sorted(FILE_DUMPERS)) or "<none>"
        raise ValueError(
            f"Cannot write configuration files with extension {suffix}. Supported: {supported}"
        )

    with path.open("w", encoding="utf-8") as handle:
        dumper(data, handle)


__all__ = [
    "ConfigDumper",
    "ConfigLoader",
    "FILE_DUMPERS",
    "FILE_LOADERS",
    "dump_config_file",
    "load_config_file",
    "register_loader",
]
