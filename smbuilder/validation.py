"""Pre-flight checks run before any stage touches the filesystem."""
from __future__ import annotations

from collections import Counter
from typing import List

from .errors import ValidationError
from .events import EventBus
from .romformat import RomTool
from .spec import DEFAULT_JOBS, RomFormat, Spec


def structural_errors(spec: Spec) -> List[str]:
    """Return problems that make ``spec`` unbuildable regardless of disk state."""

    errors: List[str] = []
    for field_name in ("name", "url", "branch"):
        if not getattr(spec.repo, field_name).strip():
            errors.append(f"repo.{field_name} must not be empty")
    if spec.jobs is not None and spec.jobs < 1:
        errors.append(f"jobs must be at least 1, got {spec.jobs}")
    if spec.texture_pack is not None and not spec.repo.supports_textures:
        errors.append(f"repository '{spec.repo.name}' does not support texture packs")
    if spec.content_packs and not spec.repo.supports_packs:
        errors.append(f"repository '{spec.repo.name}' does not support content packs")

    for label, count in Counter(pack.label for pack in spec.content_packs).items():
        if count > 1:
            errors.append(f"content pack label '{label}' is used {count} times")
    for name, count in Counter(script.name for script in spec.scripts).items():
        if count > 1:
            errors.append(f"script name '{name}' is used {count} times")
    for script in spec.scripts:
        if "/" in script.name or script.name in {"", ".", ".."}:
            errors.append(f"script name '{script.name}' is not a plain file name")
    return errors


def validate_spec(spec: Spec, events: EventBus, rom_tool: RomTool) -> RomFormat:
    """Check ``spec`` and report soft problems as warnings.

    Returns the detected format of the ROM, which may differ from the
    declared one.
    """

    errors = structural_errors(spec)
    if errors:
        raise ValidationError("; ".join(errors))

    rom_path = spec.rom.path
    if not rom_path.is_file():
        raise ValidationError(f"the ROM file at {rom_path} was not found")

    try:
        detected = rom_tool.detect_format(rom_path)
    except (OSError, ValueError) as exc:
        raise ValidationError("failed to verify the format of the ROM", cause=exc) from exc

    if detected != spec.rom.format:
        events.warn(
            f"the ROM format specified in the spec ({spec.rom.format.value}) "
            f"does not match the file ({detected.value})!"
        )

    if spec.jobs is None:
        events.warn(
            f"did not find a value for jobs in the spec; using {DEFAULT_JOBS}. "
            "It is highly advised to specify it!"
        )

    return detected


__all__ = ["structural_errors", "validate_spec"]
