"""Work out which setup stages a build still needs."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List

from .spec import Spec
from .spec_io import SPEC_FILE_NAME

BUILD_SCRIPT_NAME = "build.sh"
SCRIPTS_DIR_NAME = "scripts"


class SetupStage(str, Enum):
    WRITE_SPEC_FILE = "write-spec-file"
    CLONE_REPO = "clone-repo"
    COPY_ROM = "copy-rom"
    CREATE_BUILD_SCRIPT = "create-build-script"
    CREATE_SCRIPTS_DIR = "create-scripts-dir"
    WRITE_POST_BUILD_SCRIPTS = "write-post-build-scripts"


class PostBuildStage(str, Enum):
    TEXTURE_PACK = "texture-pack"
    CONTENT_PACKS = "content-packs"
    POST_BUILD_SCRIPTS = "post-build-scripts"


@dataclass(frozen=True, slots=True)
class BuildPaths:
    """Deterministic on-disk locations for one spec under one base directory."""

    base_dir: Path
    spec: Spec

    @property
    def spec_file(self) -> Path:
        return self.base_dir / SPEC_FILE_NAME

    @property
    def repo_dir(self) -> Path:
        return self.base_dir / self.spec.repo.name

    @property
    def rom_target(self) -> Path:
        return self.repo_dir / self.spec.rom.target_name

    @property
    def build_script(self) -> Path:
        return self.base_dir / BUILD_SCRIPT_NAME

    @property
    def scripts_dir(self) -> Path:
        return self.base_dir / SCRIPTS_DIR_NAME

    @property
    def output_dir(self) -> Path:
        return self.repo_dir / "build" / f"{self.spec.rom.region.value}_pc"

    @property
    def artifact(self) -> Path:
        region = self.spec.rom.region.value
        return self.output_dir / f"sm64.{region}.f3dex2e"

    @property
    def texture_dir(self) -> Path:
        return self.output_dir / "res" / "gfx"

    @property
    def content_packs_dir(self) -> Path:
        return self.output_dir / "dynos" / "packs"


def artifact_path(spec: Spec, base_dir: Path) -> Path:
    return BuildPaths(base_dir, spec).artifact


def plan(spec: Spec, base_dir: Path) -> List[SetupStage]:
    """Return the setup stages whose outputs are missing, in execution order.

    Every check runs against the final location of its output in a single
    pass, so stages that depend on the clone are planned even while the
    repository directory does not exist yet.
    """

    paths = BuildPaths(Path(base_dir), spec)
    needed: List[SetupStage] = []

    if not paths.spec_file.exists():
        needed.append(SetupStage.WRITE_SPEC_FILE)
    if not paths.repo_dir.exists():
        needed.append(SetupStage.CLONE_REPO)
    if not paths.rom_target.exists():
        needed.append(SetupStage.COPY_ROM)
    if not paths.build_script.exists():
        needed.append(SetupStage.CREATE_BUILD_SCRIPT)
    if not paths.scripts_dir.exists():
        needed.append(SetupStage.CREATE_SCRIPTS_DIR)
    if any(not script.path_in(paths.scripts_dir).exists() for script in spec.scripts):
        needed.append(SetupStage.WRITE_POST_BUILD_SCRIPTS)

    return needed


__all__ = [
    "BUILD_SCRIPT_NAME",
    "BuildPaths",
    "PostBuildStage",
    "SCRIPTS_DIR_NAME",
    "SetupStage",
    "artifact_path",
    "plan",
]
