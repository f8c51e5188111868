"""Post-build customizations: texture pack, content packs and user scripts."""
from __future__ import annotations

from pathlib import Path
import shutil
import tarfile
import zipfile

from .archive import extract_archive, is_archive
from .command_runner import CommandRunner
from .errors import FilesystemError, FilesystemErrorKind, InvariantViolated
from .events import ArtifactKind, EventBus, PostBuildEvent
from .planner import BuildPaths, PostBuildStage
from .spec import Spec


class PostBuildInstaller:
    def __init__(self, events: EventBus, runner: CommandRunner) -> None:
        self._events = events
        self._runner = runner

    @staticmethod
    def needed_stages(spec: Spec) -> list[PostBuildStage]:
        """Post-build stages whose optional spec field is present, in order."""

        stages: list[PostBuildStage] = []
        if spec.texture_pack is not None:
            stages.append(PostBuildStage.TEXTURE_PACK)
        if spec.content_packs:
            stages.append(PostBuildStage.CONTENT_PACKS)
        if spec.scripts:
            stages.append(PostBuildStage.POST_BUILD_SCRIPTS)
        return stages

    def run_stage(self, stage: PostBuildStage, spec: Spec, paths: BuildPaths) -> None:
        if stage is PostBuildStage.TEXTURE_PACK:
            self.install_texture_pack(spec, paths)
        elif stage is PostBuildStage.CONTENT_PACKS:
            self.install_content_packs(spec, paths)
        elif stage is PostBuildStage.POST_BUILD_SCRIPTS:
            self.run_scripts(spec, paths)
        else:
            raise InvariantViolated(f"unknown post-build stage {stage!r}", stage=stage)

    def install_texture_pack(self, spec: Spec, paths: BuildPaths) -> None:
        pack = spec.texture_pack
        if pack is None:
            return
        if not pack.enabled:
            self._events.info(f"skipping the disabled texture pack {pack.label}")
            return

        self._events.emit(PostBuildEvent(ArtifactKind.TEXTURE_PACK, pack.label))
        _place(pack.path, paths.texture_dir)

    def install_content_packs(self, spec: Spec, paths: BuildPaths) -> None:
        for pack in spec.content_packs:
            if not pack.enabled:
                self._events.info(f"skipping the disabled content pack {pack.label}")
                continue
            self._events.emit(PostBuildEvent(ArtifactKind.CONTENT_PACK, pack.label))
            _place(pack.path, paths.content_packs_dir / pack.label)

    def run_scripts(self, spec: Spec, paths: BuildPaths) -> None:
        for script in spec.scripts:
            self._events.emit(PostBuildEvent(ArtifactKind.SCRIPT, script.name, script.description))

            script_path = script.path_in(paths.scripts_dir)
            if not script_path.is_file():
                raise InvariantViolated(
                    f"the staged script {script_path} is missing (please report this bug!)",
                    stage=PostBuildStage.POST_BUILD_SCRIPTS,
                )

            self._runner.run(
                [str(script_path.absolute())],
                cwd=paths.repo_dir,
                check=True,
                note=f"post-build script {script.name}",
            )
            self._events.info(f"script {script.name} finished successfully")


def _place(source: Path, destination: Path) -> None:
    """Copy a directory, extract an archive or copy a single file into ``destination``."""

    if not source.exists():
        raise FilesystemError(
            f"the pack at {source} does not exist",
            path=source,
            destination=destination,
            kind=FilesystemErrorKind.NOT_FOUND,
        )

    try:
        if source.is_dir():
            shutil.copytree(source, destination, dirs_exist_ok=True)
        elif is_archive(source):
            extract_archive(source, destination)
        else:
            destination.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination / source.name)
    except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile) as exc:
        raise FilesystemError(
            f"failed to install {source} into {destination}",
            path=source,
            destination=destination,
            kind=FilesystemErrorKind.COPY,
            cause=exc,
        ) from exc


__all__ = ["PostBuildInstaller"]
