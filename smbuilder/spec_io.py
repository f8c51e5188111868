"""Conversion between :class:`Spec` objects and plain mappings / files."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping

from .config_loader import dump_config_file, load_config_file
from .errors import ValidationError
from .spec import (
    ContentPack,
    Makeopt,
    PostBuildScript,
    Region,
    Repository,
    Rom,
    RomFormat,
    Spec,
    TexturePack,
    with_rom_path,
)

SPEC_FILE_NAME = "smbuilder.yaml"


def _require_mapping(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(f"'{label}' must be a mapping")
    return value


def _require_str(mapping: Mapping[str, Any], key: str, label: str) -> str:
    value = mapping.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{label}.{key}' must be a non-empty string")
    return value


def _optional_str(mapping: Mapping[str, Any], key: str, label: str) -> str | None:
    value = mapping.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{label}.{key}' must be a string")
    return value


def _bool(mapping: Mapping[str, Any], key: str, default: bool, label: str) -> bool:
    value = mapping.get(key, default)
    if not isinstance(value, bool):
        raise ValidationError(f"'{label}.{key}' must be a boolean")
    return value


def _sequence(value: Any, label: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"'{label}' must be a list")
    return value


def _rom_from_mapping(raw: Any) -> Rom:
    mapping = _require_mapping(raw, "rom")
    try:
        region = Region(str(mapping.get("region", "")).lower())
    except ValueError as exc:
        raise ValidationError(f"unknown ROM region: {mapping.get('region')!r}", cause=exc) from exc
    try:
        rom_format = RomFormat(str(mapping.get("format", RomFormat.BIG_ENDIAN.value)).lower())
    except ValueError as exc:
        raise ValidationError(f"unknown ROM format: {mapping.get('format')!r}", cause=exc) from exc
    return Rom(region=region, path=Path(_require_str(mapping, "path", "rom")), format=rom_format)


def _repo_from_mapping(raw: Any) -> Repository:
    mapping = _require_mapping(raw, "repo")
    return Repository(
        name=_require_str(mapping, "name", "repo"),
        url=_require_str(mapping, "url", "repo"),
        branch=_require_str(mapping, "branch", "repo"),
        supports_packs=_bool(mapping, "supports_packs", True, "repo"),
        supports_textures=_bool(mapping, "supports_textures", True, "repo"),
    )


def _makeopt_from_value(raw: Any) -> Makeopt:
    if isinstance(raw, str):
        key, sep, value = raw.partition("=")
        return Makeopt(key=key, value=value if sep else None)
    mapping = _require_mapping(raw, "makeopts[]")
    value = mapping.get("value")
    return Makeopt(key=_require_str(mapping, "key", "makeopts[]"), value=None if value is None else str(value))


def spec_from_mapping(data: Mapping[str, Any]) -> Spec:
    """Build a :class:`Spec` from decoded configuration data."""

    jobs = data.get("jobs")
    if jobs is not None and (isinstance(jobs, bool) or not isinstance(jobs, int)):
        raise ValidationError("'jobs' must be an integer")

    texture_pack = None
    raw_texture = data.get("texture_pack")
    if raw_texture is not None:
        texture_mapping = _require_mapping(raw_texture, "texture_pack")
        texture_pack = TexturePack(
            path=Path(_require_str(texture_mapping, "path", "texture_pack")),
            name=_optional_str(texture_mapping, "name", "texture_pack"),
            enabled=_bool(texture_mapping, "enabled", True, "texture_pack"),
        )

    content_packs = []
    for raw_pack in _sequence(data.get("content_packs"), "content_packs"):
        pack_mapping = _require_mapping(raw_pack, "content_packs[]")
        content_packs.append(
            ContentPack(
                label=_require_str(pack_mapping, "label", "content_packs[]"),
                path=Path(_require_str(pack_mapping, "path", "content_packs[]")),
                enabled=_bool(pack_mapping, "enabled", True, "content_packs[]"),
            )
        )

    scripts = []
    for raw_script in _sequence(data.get("scripts"), "scripts"):
        script_mapping = _require_mapping(raw_script, "scripts[]")
        contents = script_mapping.get("contents")
        if not isinstance(contents, str):
            raise ValidationError("'scripts[].contents' must be a string")
        scripts.append(
            PostBuildScript(
                name=_require_str(script_mapping, "name", "scripts[]"),
                contents=contents,
                description=_optional_str(script_mapping, "description", "scripts[]"),
            )
        )

    return Spec(
        rom=_rom_from_mapping(data.get("rom")),
        repo=_repo_from_mapping(data.get("repo")),
        jobs=jobs,
        name=_optional_str(data, "name", "spec"),
        makeopts=tuple(_makeopt_from_value(item) for item in _sequence(data.get("makeopts"), "makeopts")),
        content_packs=tuple(content_packs),
        texture_pack=texture_pack,
        scripts=tuple(scripts),
    )


def spec_to_mapping(spec: Spec) -> Dict[str, Any]:
    """Convert ``spec`` into plain data suitable for YAML or JSON."""

    data: Dict[str, Any] = {
        "rom": {
            "region": spec.rom.region.value,
            "path": str(spec.rom.path),
            "format": spec.rom.format.value,
        },
        "repo": {
            "name": spec.repo.name,
            "url": spec.repo.url,
            "branch": spec.repo.branch,
            "supports_packs": spec.repo.supports_packs,
            "supports_textures": spec.repo.supports_textures,
        },
    }
    if spec.jobs is not None:
        data["jobs"] = spec.jobs
    if spec.name is not None:
        data["name"] = spec.name
    if spec.makeopts:
        data["makeopts"] = [
            {"key": opt.key} if opt.value is None else {"key": opt.key, "value": opt.value}
            for opt in spec.makeopts
        ]
    if spec.texture_pack is not None:
        texture: Dict[str, Any] = {"path": str(spec.texture_pack.path), "enabled": spec.texture_pack.enabled}
        if spec.texture_pack.name is not None:
            texture["name"] = spec.texture_pack.name
        data["texture_pack"] = texture
    if spec.content_packs:
        data["content_packs"] = [
            {"label": pack.label, "path": str(pack.path), "enabled": pack.enabled}
            for pack in spec.content_packs
        ]
    if spec.scripts:
        scripts = []
        for script in spec.scripts:
            entry: Dict[str, Any] = {"name": script.name, "contents": script.contents}
            if script.description is not None:
                entry["description"] = script.description
            scripts.append(entry)
        data["scripts"] = scripts
    return data


def load_spec(path: Path) -> Spec:
    """Load a spec file; a relative ROM path is resolved against the file's directory."""

    try:
        data = load_config_file(path)
    except (OSError, ValueError, TypeError) as exc:
        raise ValidationError(f"failed to read the spec file at {path}", cause=exc) from exc
    spec = spec_from_mapping(data)
    if not spec.rom.path.is_absolute():
        spec = with_rom_path(spec, (path.parent / spec.rom.path).resolve())
    return spec


def dump_spec(spec: Spec, path: Path) -> None:
    dump_config_file(spec_to_mapping(with_rom_path(spec, spec.rom.path.resolve())), path)


__all__ = [
    "SPEC_FILE_NAME",
    "dump_spec",
    "load_spec",
    "spec_from_mapping",
    "spec_to_mapping",
]
