"""Rendering of the generated ``build.sh``."""
from __future__ import annotations

from pathlib import Path
from typing import List
import os
import shlex
import stat

from .errors import FilesystemError, FilesystemErrorKind
from .spec import Spec, default_makeopts, make_command

EXECUTE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

_HEADER = """#!/bin/sh

# Script Generated by smbuilder.
# DO NOT EDIT; YOUR CHANGES
# WILL NOT BE SAVED.
"""


def canonical_repo_dir(repo_dir: Path) -> Path:
    try:
        return Path(repo_dir).resolve(strict=True)
    except OSError as exc:
        raise FilesystemError(
            f"failed to get the absolute path from {repo_dir}",
            path=repo_dir,
            kind=FilesystemErrorKind.NOT_FOUND,
            cause=exc,
        ) from exc


def render_build_script(spec: Spec, repo_dir: Path, *, platform: str | None = None) -> str:
    """Return the shell script that compiles ``spec`` inside ``repo_dir``."""

    parts: List[str] = [make_command(platform), "-C", shlex.quote(str(canonical_repo_dir(repo_dir)))]
    parts.extend(shlex.quote(opt.render()) for opt in default_makeopts(platform))
    parts.extend(shlex.quote(opt.render()) for opt in spec.makeopts)
    parts.append(f"-j{spec.effective_jobs}")
    return f"{_HEADER}\n{' '.join(parts)}\n"


def make_executable(path: Path) -> int:
    """``chmod +x`` ``path``: add the execute bits and keep every other bit.

    Returns the new mode.
    """

    try:
        current = stat.S_IMODE(os.stat(path).st_mode)
        mode = current | EXECUTE_BITS
        os.chmod(path, mode)
    except OSError as exc:
        raise FilesystemError(
            f"failed to make {path} executable",
            path=path,
            kind=FilesystemErrorKind.PERMISSION,
            cause=exc,
        ) from exc
    return mode


__all__ = ["EXECUTE_BITS", "canonical_repo_dir", "make_executable", "render_build_script"]
