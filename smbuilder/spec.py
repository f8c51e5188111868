"""Declarative description of a single build."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Tuple
import sys

from .errors import ValidationError

DEFAULT_JOBS = 2


class Region(str, Enum):
    US = "us"
    EU = "eu"
    JP = "jp"


class RomFormat(str, Enum):
    """Byte order of an N64 ROM image; big-endian (z64) is canonical."""

    BIG_ENDIAN = "z64"
    LITTLE_ENDIAN = "n64"
    BYTE_SWAPPED = "v64"

    @property
    def is_canonical(self) -> bool:
        return self is RomFormat.BIG_ENDIAN


@dataclass(frozen=True, slots=True)
class Rom:
    region: Region
    path: Path
    format: RomFormat = RomFormat.BIG_ENDIAN

    @property
    def target_name(self) -> str:
        """File name the source port expects for this ROM."""
        return f"baserom.{self.region.value}.z64"


@dataclass(frozen=True, slots=True)
class Repository:
    name: str
    url: str
    branch: str
    supports_packs: bool = True
    supports_textures: bool = True


@dataclass(frozen=True, slots=True)
class Makeopt:
    key: str
    value: str | None = None

    def render(self) -> str:
        if self.value is None:
            return self.key
        return f"{self.key}={self.value}"


@dataclass(frozen=True, slots=True)
class TexturePack:
    path: Path
    name: str | None = None
    enabled: bool = True

    @property
    def label(self) -> str:
        return self.name or self.path.name


@dataclass(frozen=True, slots=True)
class ContentPack:
    """A DynOS model/content pack."""

    label: str
    path: Path
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class PostBuildScript:
    name: str
    contents: str
    description: str | None = None

    def path_in(self, scripts_dir: Path) -> Path:
        return scripts_dir / self.name


@dataclass(frozen=True, slots=True)
class Spec:
    rom: Rom
    repo: Repository
    jobs: int | None = None
    name: str | None = None
    makeopts: Tuple[Makeopt, ...] = ()
    content_packs: Tuple[ContentPack, ...] = ()
    texture_pack: TexturePack | None = None
    scripts: Tuple[PostBuildScript, ...] = ()

    @property
    def effective_jobs(self) -> int:
        return self.jobs if self.jobs is not None else DEFAULT_JOBS

    @property
    def display_name(self) -> str:
        return self.name or self.repo.name

    @staticmethod
    def builder() -> "SpecBuilder":
        return SpecBuilder()


_BSD_PLATFORMS = ("darwin", "freebsd", "openbsd", "netbsd", "dragonfly")


def make_command(platform: str | None = None) -> str:
    """Return the GNU make executable name for ``platform``."""

    current = platform or sys.platform
    if current.startswith(_BSD_PLATFORMS):
        return "gmake"
    return "make"


def default_makeopts(platform: str | None = None) -> List[Makeopt]:
    current = platform or sys.platform
    if current.startswith("darwin"):
        return [Makeopt("OSX_BUILD", "1")]
    return []


class SpecBuilder:
    """Fluent construction of a :class:`Spec`.

    Setters that the selected repository cannot honour raise
    :class:`ValidationError` instead of dropping the value.
    """

    def __init__(self) -> None:
        self._rom: Rom | None = None
        self._repo: Repository | None = None
        self._jobs: int | None = None
        self._name: str | None = None
        self._makeopts: List[Makeopt] = []
        self._content_packs: List[ContentPack] = []
        self._texture_pack: TexturePack | None = None
        self._scripts: List[PostBuildScript] = []

    def rom(self, region: Region | str, path: Path | str, rom_format: RomFormat | str = RomFormat.BIG_ENDIAN) -> "SpecBuilder":
        self._rom = Rom(region=Region(region), path=Path(path), format=RomFormat(rom_format))
        return self

    def repo(self, repo: Repository) -> "SpecBuilder":
        if self._texture_pack is not None and not repo.supports_textures:
            raise ValidationError(f"repository '{repo.name}' does not support texture packs")
        if self._content_packs and not repo.supports_packs:
            raise ValidationError(f"repository '{repo.name}' does not support content packs")
        self._repo = repo
        return self

    def jobs(self, value: int) -> "SpecBuilder":
        self._jobs = value
        return self

    def name(self, value: str) -> "SpecBuilder":
        self._name = value
        return self

    def add_makeopt(self, key: str, value: str | None = None) -> "SpecBuilder":
        self._makeopts.append(Makeopt(key, value))
        return self

    def extend_makeopts(self, makeopts: Iterable[Makeopt]) -> "SpecBuilder":
        self._makeopts.extend(makeopts)
        return self

    def texture_pack(self, pack: TexturePack) -> "SpecBuilder":
        if self._repo is not None and not self._repo.supports_textures:
            raise ValidationError(f"repository '{self._repo.name}' does not support texture packs")
        self._texture_pack = pack
        return self

    def add_content_pack(self, pack: ContentPack) -> "SpecBuilder":
        if self._repo is not None and not self._repo.supports_packs:
            raise ValidationError(f"repository '{self._repo.name}' does not support content packs")
        self._content_packs.append(pack)
        return self

    def add_script(self, script: PostBuildScript) -> "SpecBuilder":
        self._scripts.append(script)
        return self

    def build(self) -> Spec:
        if self._rom is None:
            raise ValidationError("a base ROM is required to compile the project")
        if self._repo is None:
            raise ValidationError("a repository is required to compile the project")
        if self._jobs is not None and self._jobs < 1:
            raise ValidationError(f"jobs must be at least 1, got {self._jobs}")
        return Spec(
            rom=self._rom,
            repo=self._repo,
            jobs=self._jobs,
            name=self._name,
            makeopts=tuple(self._makeopts),
            content_packs=tuple(self._content_packs),
            texture_pack=self._texture_pack,
            scripts=tuple(self._scripts),
        )


def with_rom_path(spec: Spec, path: Path) -> Spec:
    """Return a copy of ``spec`` whose ROM points at ``path``."""
    return replace(spec, rom=replace(spec.rom, path=path))


__all__ = [
    "ContentPack",
    "DEFAULT_JOBS",
    "Makeopt",
    "PostBuildScript",
    "Region",
    "Repository",
    "Rom",
    "RomFormat",
    "Spec",
    "SpecBuilder",
    "TexturePack",
    "default_makeopts",
    "make_command",
    "with_rom_path",
]
