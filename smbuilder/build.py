"""Build orchestration: setup stages, compilation and post-build."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable
import os
import shutil

from .build_script import make_executable, render_build_script
from .cancellation import CancellationToken, interrupt_handler
from .command_runner import CommandRunner, SubprocessCommandRunner
from .errors import (
    BuildCancelled,
    BuildError,
    FilesystemError,
    FilesystemErrorKind,
    InvariantViolated,
    NetworkError,
)
from .events import (
    CloneProgressEvent,
    CompilerOutputEvent,
    EventBus,
    EventSink,
    SkippedBuildEvent,
    StageEvent,
    StageStatus,
)
from .git_client import GitClient, VersionControl
from .planner import BuildPaths, SetupStage, plan
from .postbuild import PostBuildInstaller
from .romformat import N64RomTool, RomTool
from .spec import RomFormat, Spec
from .spec_io import dump_spec
from .validation import validate_spec


class BuildState(str, Enum):
    IDLE = "idle"
    SETTING_UP = "setting-up"
    COMPILING = "compiling"
    POST_BUILDING = "post-building"
    DONE = "done"
    FAILED = "failed"


_ACTIVE_STATES = frozenset({BuildState.SETTING_UP, BuildState.COMPILING, BuildState.POST_BUILDING})


@dataclass(slots=True)
class BuildResult:
    """Terminal outcome of :meth:`Builder.build`."""

    state: BuildState
    error: BuildError | None = None
    compiled: bool = False

    @property
    def ok(self) -> bool:
        return self.state is BuildState.DONE

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class Builder:
    """Build one spec inside a base directory.

    The base directory must exist before :meth:`build` is called. Progress is
    reported through ``events``; the return value says whether the build
    succeeded and, if not, which stage failed.
    """

    def __init__(
        self,
        spec: Spec,
        base_dir: Path | str,
        events: EventBus | EventSink | Callable[[Any], None] | None = None,
        *,
        runner: CommandRunner | None = None,
        git: VersionControl | None = None,
        rom_tool: RomTool | None = None,
        token: CancellationToken | None = None,
        platform: str | None = None,
    ) -> None:
        self.spec = spec
        self.base_dir = Path(base_dir).absolute()
        if isinstance(events, EventBus):
            self._events = events
        else:
            self._events = EventBus([events] if events is not None else [])
        self._runner = runner or SubprocessCommandRunner()
        self._git = git or GitClient()
        self._rom_tool = rom_tool or N64RomTool()
        self.token = token or CancellationToken()
        self._platform = platform
        self._installer = PostBuildInstaller(self._events, self._runner)
        self._state = BuildState.IDLE

    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def events(self) -> EventBus:
        return self._events

    def build(self) -> BuildResult:
        if self._state in _ACTIVE_STATES:
            raise InvariantViolated(f"a build is already running (state: {self._state.value})")

        self.token.reset()
        paths = BuildPaths(self.base_dir, self.spec)
        compiled = False
        try:
            self._state = BuildState.SETTING_UP
            self._check_base_dir()
            detected = validate_spec(self.spec, self._events, self._rom_tool)
            self._events.info(f"building {self.spec.display_name}")
            self._setup(paths, detected)

            self._state = BuildState.COMPILING
            compiled = self._compile(paths)

            self._state = BuildState.POST_BUILDING
            self._post_build(paths)
        except BuildError as exc:
            self._state = BuildState.FAILED
            self._events.error(str(exc))
            return BuildResult(state=BuildState.FAILED, error=exc, compiled=compiled)

        self._state = BuildState.DONE
        self._events.info(f"finished building {self.spec.display_name}")
        return BuildResult(state=BuildState.DONE, compiled=compiled)

    def _check_base_dir(self) -> None:
        if not self.base_dir.is_dir():
            raise FilesystemError(
                f"the base directory {self.base_dir} does not exist",
                path=self.base_dir,
                kind=FilesystemErrorKind.BASE_DIR_UNAVAILABLE,
            )

    def _run_stage(self, stage: Any, action: Callable[[], None]) -> None:
        self._events.emit(StageEvent(stage, StageStatus.STARTED))
        try:
            action()
        except BuildError as exc:
            if exc.stage is None:
                exc.stage = stage
            raise
        self._events.emit(StageEvent(stage, StageStatus.COMPLETED))

    # --- Setup ---

    def _setup(self, paths: BuildPaths, detected: RomFormat) -> None:
        actions = {
            SetupStage.WRITE_SPEC_FILE: lambda: self._write_spec_file(paths),
            SetupStage.CLONE_REPO: lambda: self._clone_repo(paths),
            SetupStage.COPY_ROM: lambda: self._copy_rom(paths, detected),
            SetupStage.CREATE_BUILD_SCRIPT: lambda: self._create_build_script(paths),
            SetupStage.CREATE_SCRIPTS_DIR: lambda: self._create_scripts_dir(paths),
            SetupStage.WRITE_POST_BUILD_SCRIPTS: lambda: self._write_scripts(paths),
        }
        for stage in plan(self.spec, self.base_dir):
            self._run_stage(stage, actions[stage])

    def _write_spec_file(self, paths: BuildPaths) -> None:
        target = paths.spec_file
        self._events.info(f"creating the spec file at {target}")
        try:
            dump_spec(self.spec, target)
        except (OSError, ValueError) as exc:
            raise FilesystemError(
                f"failed to write the spec into the file at {target}",
                path=target,
                kind=FilesystemErrorKind.WRITE,
                cause=exc,
            ) from exc

    def _on_clone_progress(self, received_objects: int, total_objects: int, received_bytes: int) -> None:
        self._events.emit(CloneProgressEvent(received_objects, total_objects, received_bytes))
        self.token.raise_if_cancelled(SetupStage.CLONE_REPO)

    def _clone_repo(self, paths: BuildPaths) -> None:
        repo = self.spec.repo
        dest = paths.repo_dir
        self._events.info(f"cloning the repository {repo.url} ({repo.branch}) into {dest}")

        with self.token.guard(dest), interrupt_handler(self.token):
            try:
                self._git.clone(repo.url, repo.branch, dest, self._on_clone_progress)
            except BuildCancelled:
                if self.token.discard_armed_dir():
                    self._events.warn(f"removed the partially cloned repository at {dest}")
                raise
            except NetworkError:
                shutil.rmtree(dest, ignore_errors=True)
                raise
            except OSError as exc:
                shutil.rmtree(dest, ignore_errors=True)
                raise NetworkError(
                    f"failed to clone the repository into {dest}",
                    url=repo.url,
                    cause=exc,
                ) from exc

        # Interrupted after the clone returned: keep the repository.
        self.token.raise_if_cancelled(SetupStage.CLONE_REPO)

    def _copy_rom(self, paths: BuildPaths, detected: RomFormat) -> None:
        source = self.spec.rom.path
        target = paths.rom_target
        # The target only appears once complete; planning treats it as done.
        partial = target.with_name(f"{target.name}.partial")
        self._events.info("copying the ROM")
        try:
            if detected.is_canonical:
                shutil.copyfile(source, partial)
            else:
                self._events.info(f"converting the ROM from {detected.value} to z64")
                self._rom_tool.convert(source, partial, detected)
            os.replace(partial, target)
        except (OSError, ValueError) as exc:
            partial.unlink(missing_ok=True)
            raise FilesystemError(
                f"failed to copy the ROM from {source} to {target}",
                path=source,
                destination=target,
                kind=FilesystemErrorKind.COPY,
                cause=exc,
            ) from exc

    def _create_build_script(self, paths: BuildPaths) -> None:
        target = paths.build_script
        contents = render_build_script(self.spec, paths.repo_dir, platform=self._platform)
        self._events.info(f"writing the build script to {target}")
        try:
            target.write_text(contents, encoding="utf-8")
        except OSError as exc:
            raise FilesystemError(
                f"failed to write to the build script at {target}",
                path=target,
                kind=FilesystemErrorKind.WRITE,
                cause=exc,
            ) from exc
        make_executable(target)

    def _create_scripts_dir(self, paths: BuildPaths) -> None:
        try:
            paths.scripts_dir.mkdir(exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                f"failed to create the build scripts dir at {paths.scripts_dir}",
                path=paths.scripts_dir,
                kind=FilesystemErrorKind.CREATE,
                cause=exc,
            ) from exc

    def _write_scripts(self, paths: BuildPaths) -> None:
        for script in self.spec.scripts:
            target = script.path_in(paths.scripts_dir)
            try:
                target.write_text(script.contents, encoding="utf-8")
            except OSError as exc:
                raise FilesystemError(
                    f"failed to write the post-build script {script.name}",
                    path=target,
                    kind=FilesystemErrorKind.WRITE,
                    cause=exc,
                ) from exc
            make_executable(target)

    # --- Compile ---

    def _compile(self, paths: BuildPaths) -> bool:
        artifact = paths.artifact
        if artifact.exists():
            self._events.emit(SkippedBuildEvent(str(artifact)))
            return False

        script = paths.build_script.resolve()
        self._events.info(f"compiling with {script}")
        try:
            self._runner.run(
                [str(script)],
                cwd=self.base_dir,
                stream=True,
                on_output=lambda line: self._events.emit(CompilerOutputEvent(line)),
                note="compile",
            )
        except BuildError as exc:
            if exc.stage is None:
                exc.stage = BuildState.COMPILING
            raise
        return True

    # --- Post-build ---

    def _post_build(self, paths: BuildPaths) -> None:
        for stage in self._installer.needed_stages(self.spec):
            self._run_stage(stage, lambda stage=stage: self._installer.run_stage(stage, self.spec, paths))


__all__ = ["BuildResult", "BuildState", "Builder"]
