from __future__ import annotations

from pathlib import Path
import os
import signal
import stat
import tempfile
import unittest

from smbuilder.build import Builder, BuildState
from smbuilder.cancellation import CancellationToken
from smbuilder.command_runner import RecordingCommandRunner, SubprocessCommandRunner
from smbuilder.errors import (
    BuildCancelled,
    FilesystemError,
    FilesystemErrorKind,
    InvariantViolated,
    NetworkError,
    ProcessError,
    ValidationError,
)
from smbuilder.events import (
    CloneProgressEvent,
    CompilerOutputEvent,
    EventBus,
    PostBuildEvent,
    RecordingEventSink,
    Severity,
    SkippedBuildEvent,
    StageEvent,
    StageStatus,
)
from smbuilder.planner import BuildPaths, PostBuildStage, SetupStage, plan
from smbuilder.romformat import N64RomTool
from smbuilder.spec import PostBuildScript, Repository, RomFormat, Spec, TexturePack

BIG_ENDIAN_ROM = bytes((0x80, 0x37, 0x12, 0x40)) + bytes(range(4, 64))
REPO = Repository(name="sm64ex", url="https://example.com/sm64ex.git", branch="nightly")


class TruncatingRomTool(N64RomTool):
    """Writes half of the output before failing, like a full disk would."""

    def convert(self, src, dst, from_format) -> None:
        Path(dst).write_bytes(Path(src).read_bytes()[:16])
        raise OSError(28, "No space left on device")


class FakeGit:
    """Creates the destination like a clone would, optionally misbehaving."""

    def __init__(self, *, interrupt: bool = False, interrupt_after: bool = False, error: Exception | None = None) -> None:
        self.interrupt = interrupt
        self.interrupt_after = interrupt_after
        self.error = error
        self.calls: list[tuple[str, str, Path]] = []

    def clone(self, url, branch, dest, progress=None) -> None:
        self.calls.append((url, branch, dest))
        dest.mkdir()
        (dest / "Makefile").write_text("all:\n")
        if self.interrupt:
            signal.raise_signal(signal.SIGINT)
        if progress is not None:
            progress(5, 10, 2048)
        if self.error is not None:
            raise self.error
        if progress is not None:
            progress(10, 10, 4096)
        if self.interrupt_after:
            signal.raise_signal(signal.SIGINT)


class BuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        self.base = self.root / "build"
        self.base.mkdir()
        self.rom = self.root / "sm64.z64"
        self.rom.write_bytes(BIG_ENDIAN_ROM)
        self.sink = RecordingEventSink()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _spec(self, rom_format: RomFormat = RomFormat.BIG_ENDIAN, **fields) -> Spec:
        builder = Spec.builder().rom("us", self.rom, rom_format).repo(REPO).jobs(4)
        if "texture_pack" in fields:
            builder.texture_pack(fields["texture_pack"])
        for script in fields.get("scripts", ()):
            builder.add_script(script)
        return builder.build()

    def _builder(self, spec: Spec, *, git: FakeGit | None = None, runner: RecordingCommandRunner | None = None, token=None) -> Builder:
        self.git = git or FakeGit()
        self.runner = runner or RecordingCommandRunner(outputs={str(self.base / "build.sh"): ["CC main.c", "LINK sm64"]})
        return Builder(spec, self.base, self.sink, runner=self.runner, git=self.git, token=token, platform="linux")

    def test_fresh_build_runs_every_setup_stage_then_compiles(self) -> None:
        spec = self._spec()
        builder = self._builder(spec)

        result = builder.build()

        self.assertTrue(result.ok, result.error)
        self.assertTrue(result.compiled)
        self.assertEqual(builder.state, BuildState.DONE)
        self.assertEqual(
            self.sink.stages(),
            [
                SetupStage.WRITE_SPEC_FILE,
                SetupStage.CLONE_REPO,
                SetupStage.COPY_ROM,
                SetupStage.CREATE_BUILD_SCRIPT,
                SetupStage.CREATE_SCRIPTS_DIR,
            ],
        )
        self.assertEqual(self.sink.stages(), self.sink.stages(StageStatus.COMPLETED))
        self.assertEqual(self.git.calls, [(REPO.url, REPO.branch, self.base / "sm64ex")])

        paths = BuildPaths(self.base, spec)
        self.assertEqual(paths.rom_target.read_bytes(), BIG_ENDIAN_ROM)
        self.assertTrue(os.stat(paths.build_script).st_mode & stat.S_IXUSR)
        self.assertIn(f"make -C {paths.repo_dir} -j4", paths.build_script.read_text())
        self.assertTrue(paths.spec_file.is_file())

        self.assertEqual(len(self.runner.commands), 1)
        command = self.runner.commands[0]
        self.assertEqual(command.command, [str(paths.build_script)])
        self.assertEqual(command.cwd, str(self.base))
        self.assertTrue(command.stream)
        self.assertEqual([event.line for event in self.sink.of_type(CompilerOutputEvent)], ["CC main.c", "LINK sm64"])
        self.assertEqual(len(self.sink.of_type(CloneProgressEvent)), 2)
        self.assertEqual(self.sink.logs(Severity.WARN), [])

    def test_second_run_skips_setup_and_existing_artifact(self) -> None:
        spec = self._spec()
        self.assertTrue(self._builder(spec).build().ok)
        paths = BuildPaths(self.base, spec)
        paths.artifact.parent.mkdir(parents=True)
        paths.artifact.write_bytes(b"elf")
        self.sink.events.clear()

        builder = self._builder(spec)
        result = builder.build()

        self.assertTrue(result.ok)
        self.assertFalse(result.compiled)
        self.assertEqual(self.sink.of_type(StageEvent), [])
        self.assertEqual(self.git.calls, [])
        self.assertEqual(self.runner.commands, [])
        self.assertEqual(self.sink.of_type(SkippedBuildEvent), [SkippedBuildEvent(str(paths.artifact))])

    def test_interrupt_during_clone_removes_the_partial_repository(self) -> None:
        spec = self._spec()
        builder = self._builder(spec, git=FakeGit(interrupt=True))

        result = builder.build()

        self.assertEqual(result.state, BuildState.FAILED)
        self.assertIsInstance(result.error, BuildCancelled)
        self.assertEqual(result.error.stage, SetupStage.CLONE_REPO)
        self.assertFalse((self.base / "sm64ex").exists())
        self.assertNotIn(SetupStage.COPY_ROM, self.sink.stages())
        self.assertEqual(self.runner.commands, [])
        self.assertEqual(len(self.sink.logs(Severity.ERROR)), 1)

    def test_cancel_after_clone_keeps_the_repository(self) -> None:
        spec = self._spec()
        token = CancellationToken()

        def cancel_after_clone(event) -> None:
            if event == StageEvent(SetupStage.CLONE_REPO, StageStatus.COMPLETED):
                token.cancel()

        builder = self._builder(spec, token=token)
        builder.events.subscribe(cancel_after_clone)

        result = builder.build()

        self.assertTrue(result.ok, result.error)
        self.assertTrue((self.base / "sm64ex" / "Makefile").exists())

    def test_interrupt_after_clone_returns_fails_but_keeps_the_repository(self) -> None:
        spec = self._spec()

        result = self._builder(spec, git=FakeGit(interrupt_after=True)).build()

        self.assertIsInstance(result.error, BuildCancelled)
        self.assertEqual(result.error.stage, SetupStage.CLONE_REPO)
        self.assertTrue((self.base / "sm64ex" / "Makefile").is_file())
        self.assertNotIn(SetupStage.COPY_ROM, self.sink.stages())
        self.assertEqual(self.sink.logs(Severity.WARN), [])
        self.assertNotIn(SetupStage.CLONE_REPO, plan(spec, self.base))

        builder = self._builder(spec)
        self.assertTrue(builder.build().ok)
        self.assertEqual(self.git.calls, [])

    def test_network_error_cleans_up_new_clone_dir(self) -> None:
        spec = self._spec()
        error = NetworkError("unreachable", url=REPO.url)
        builder = self._builder(spec, git=FakeGit(error=error))

        result = builder.build()

        self.assertIs(result.error, error)
        self.assertEqual(error.stage, SetupStage.CLONE_REPO)
        self.assertFalse((self.base / "sm64ex").exists())
        self.assertEqual(self.sink.stages(StageStatus.COMPLETED), [SetupStage.WRITE_SPEC_FILE])

    def test_declared_format_mismatch_warns_exactly_once(self) -> None:
        spec = self._spec(RomFormat.LITTLE_ENDIAN)
        result = self._builder(spec).build()

        self.assertTrue(result.ok, result.error)
        self.assertEqual(len(self.sink.logs(Severity.WARN)), 1)
        self.assertEqual(BuildPaths(self.base, spec).rom_target.read_bytes(), BIG_ENDIAN_ROM)

    def test_byte_swapped_rom_is_converted(self) -> None:
        swapped = bytearray(BIG_ENDIAN_ROM)
        swapped[0::2], swapped[1::2] = BIG_ENDIAN_ROM[1::2], BIG_ENDIAN_ROM[0::2]
        self.rom.write_bytes(bytes(swapped))
        spec = self._spec(RomFormat.BYTE_SWAPPED)

        result = self._builder(spec).build()

        self.assertTrue(result.ok, result.error)
        self.assertEqual(BuildPaths(self.base, spec).rom_target.read_bytes(), BIG_ENDIAN_ROM)
        self.assertEqual(self.sink.logs(Severity.WARN), [])

    def test_failed_rom_conversion_leaves_no_partial_target(self) -> None:
        swapped = bytearray(BIG_ENDIAN_ROM)
        swapped[0::2], swapped[1::2] = BIG_ENDIAN_ROM[1::2], BIG_ENDIAN_ROM[0::2]
        self.rom.write_bytes(bytes(swapped))
        spec = self._spec(RomFormat.BYTE_SWAPPED)
        builder = Builder(
            spec,
            self.base,
            self.sink,
            runner=RecordingCommandRunner(),
            git=FakeGit(),
            rom_tool=TruncatingRomTool(),
            platform="linux",
        )

        result = builder.build()

        self.assertIsInstance(result.error, FilesystemError)
        self.assertEqual(result.error.kind, FilesystemErrorKind.COPY)
        self.assertEqual(result.error.stage, SetupStage.COPY_ROM)
        paths = BuildPaths(self.base, spec)
        self.assertFalse(paths.rom_target.exists())
        self.assertEqual([path.name for path in paths.repo_dir.iterdir()], ["Makefile"])
        self.assertEqual(plan(spec, self.base)[0], SetupStage.COPY_ROM)

        self.assertTrue(self._builder(spec).build().ok)
        self.assertEqual(paths.rom_target.read_bytes(), BIG_ENDIAN_ROM)

    def test_missing_rom_fails_before_any_stage(self) -> None:
        self.rom.unlink()
        builder = self._builder(self._spec())

        result = builder.build()

        self.assertIsInstance(result.error, ValidationError)
        self.assertEqual(self.sink.of_type(StageEvent), [])
        self.assertEqual(list(self.base.iterdir()), [])

        self.rom.write_bytes(BIG_ENDIAN_ROM)
        self.assertTrue(builder.build().ok)

    def test_missing_base_dir(self) -> None:
        builder = Builder(self._spec(), self.root / "absent", self.sink, runner=RecordingCommandRunner(), git=FakeGit())

        result = builder.build()

        self.assertIsInstance(result.error, FilesystemError)
        self.assertEqual(result.error.kind, FilesystemErrorKind.BASE_DIR_UNAVAILABLE)
        with self.assertRaises(FilesystemError):
            result.raise_for_error()

    def test_compile_failure_keeps_the_stage_and_skips_post_build(self) -> None:
        spec = self._spec(scripts=[PostBuildScript("notify.sh", "#!/bin/sh\n")])
        runner = RecordingCommandRunner(returncodes={str(self.base / "build.sh"): 2})

        result = self._builder(spec, runner=runner).build()

        self.assertIsInstance(result.error, ProcessError)
        self.assertEqual(result.error.stage, BuildState.COMPILING)
        self.assertEqual(len(runner.commands), 1)
        self.assertEqual(self.sink.of_type(PostBuildEvent), [])

    def test_post_build_stages_run_after_compile(self) -> None:
        texture_dir = self.root / "hd"
        texture_dir.mkdir()
        (texture_dir / "coin.png").write_bytes(b"png")
        spec = self._spec(
            texture_pack=TexturePack(texture_dir),
            scripts=[PostBuildScript("notify.sh", "#!/bin/sh\necho done\n", "Say we are done")],
        )
        builder = self._builder(spec)

        result = builder.build()

        self.assertTrue(result.ok, result.error)
        paths = BuildPaths(self.base, spec)
        self.assertEqual(
            self.sink.stages()[-3:],
            [SetupStage.WRITE_POST_BUILD_SCRIPTS, PostBuildStage.TEXTURE_PACK, PostBuildStage.POST_BUILD_SCRIPTS],
        )
        script = paths.scripts_dir / "notify.sh"
        self.assertEqual(script.read_text(), "#!/bin/sh\necho done\n")
        self.assertTrue(os.stat(script).st_mode & stat.S_IXUSR)
        self.assertEqual((paths.texture_dir / "coin.png").read_bytes(), b"png")
        self.assertEqual(
            [entry.command for entry in self.runner.commands],
            [[str(paths.build_script)], [str(script)]],
        )

    def test_relative_base_dir_runs_scripts_inside_the_repository(self) -> None:
        previous = os.getcwd()
        os.chdir(self.root)
        self.addCleanup(os.chdir, previous)
        spec = self._spec(scripts=[PostBuildScript("mark.sh", "#!/bin/sh\ntouch ran.marker\n")])
        runner = RecordingCommandRunner()
        git = FakeGit()

        self.assertTrue(Builder(spec, Path("build"), self.sink, runner=runner, git=git, platform="linux").build().ok)

        paths = BuildPaths(self.base, spec)
        script = paths.scripts_dir / "mark.sh"
        self.assertEqual(runner.commands[-1].command, [str(script)])
        self.assertTrue(Path(runner.commands[-1].command[0]).is_absolute())

        paths.artifact.parent.mkdir(parents=True)
        paths.artifact.write_bytes(b"elf")
        result = Builder(spec, "build", self.sink, runner=SubprocessCommandRunner(), git=git, platform="linux").build()

        self.assertTrue(result.ok, result.error)
        self.assertFalse(result.compiled)
        self.assertTrue((paths.repo_dir / "ran.marker").is_file())

    def test_build_is_not_reentrant(self) -> None:
        spec = self._spec()
        builder = self._builder(spec)
        nested: list[Exception] = []

        def start_again(event) -> None:
            if event == StageEvent(SetupStage.COPY_ROM, StageStatus.STARTED):
                try:
                    builder.build()
                except InvariantViolated as exc:
                    nested.append(exc)

        builder.events.subscribe(start_again)

        self.assertTrue(builder.build().ok)
        self.assertEqual(len(nested), 1)

    def test_accepts_an_event_bus(self) -> None:
        bus = EventBus([self.sink])
        builder = Builder(self._spec(), self.base, bus, runner=RecordingCommandRunner(), git=FakeGit(), platform="linux")
        self.assertIs(builder.events, bus)
        self.assertTrue(builder.build().ok)


if __name__ == "__main__":
    unittest.main()
