"""Utilities for executing external commands with optional line streaming."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Dict, List, Mapping, Sequence, cast
import os
import shlex
import subprocess

from .errors import ProcessError, ProcessErrorKind

OutputSink = Callable[[str], None]


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False


def _describe(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        on_output: OutputSink | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return _describe(command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    With ``stream=True`` and an ``on_output`` sink, stdout and stderr are merged
    into one pipe and every line is handed to the sink as soon as it is read;
    nothing is accumulated, so arbitrarily long builds use constant memory.
    """

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise ProcessError(
                f"command failed with exit code {result.returncode}: {_describe(result.command)}",
                executable=result.command[0],
                kind=ProcessErrorKind.NON_ZERO_EXIT,
                returncode=result.returncode,
            )
        return result

    @staticmethod
    def _spawn_failed(command: Sequence[str], exc: OSError) -> ProcessError:
        return ProcessError(
            f"failed to spawn {_describe(command)}",
            executable=command[0],
            kind=ProcessErrorKind.SPAWN_FAILED,
            cause=exc,
        )

    @staticmethod
    def _decode_failed(command: Sequence[str], exc: UnicodeDecodeError) -> ProcessError:
        return ProcessError(
            f"output of {_describe(command)} is not valid UTF-8",
            executable=command[0],
            kind=ProcessErrorKind.OUTPUT_DECODE_FAILED,
            cause=exc,
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        on_output: OutputSink | None = None,
    ) -> CommandResult:
        command = [str(part) for part in command]
        merged_env = self._merge_environment(env)
        if not stream:
            try:
                process = subprocess.run(
                    command,
                    cwd=str(cwd) if cwd else None,
                    env=merged_env,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    check=False,
                )
            except OSError as exc:
                raise self._spawn_failed(command, exc) from exc
            except UnicodeDecodeError as exc:
                raise self._decode_failed(command, exc) from exc
            return self._finalize(
                CommandResult(
                    command=command,
                    returncode=process.returncode,
                    stdout=process.stdout,
                    stderr=process.stderr,
                ),
                check=check,
            )

        if on_output is None:
            try:
                process = subprocess.run(
                    command,
                    cwd=str(cwd) if cwd else None,
                    env=merged_env,
                    check=False,
                )
            except OSError as exc:
                raise self._spawn_failed(command, exc) from exc
            return self._finalize(
                CommandResult(command=command, returncode=process.returncode, stdout="", stderr="", streamed=True),
                check=check,
            )

        return self._finalize(self._stream_lines(command, cwd=cwd, env=merged_env, on_output=on_output), check=check)

    def _stream_lines(
        self,
        command: List[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        on_output: OutputSink,
    ) -> CommandResult:
        try:
            process = subprocess.Popen(
                command,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as exc:
            raise self._spawn_failed(command, exc) from exc

        with process:
            stdout = cast(IO[bytes], process.stdout)
            try:
                for raw in iter(stdout.readline, b""):
                    on_output(raw.decode("utf-8").rstrip("\r\n"))
            except UnicodeDecodeError as exc:
                process.kill()
                process.wait()
                raise self._decode_failed(command, exc) from exc
            returncode = process.wait()

        return CommandResult(command=command, returncode=returncode, stdout="", stderr="", streamed=True)


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``outputs`` maps a command's first element to the lines fed to
    ``on_output``; ``returncodes`` overrides the reported exit status.
    """

    def __init__(
        self,
        *,
        outputs: Mapping[str, Sequence[str]] | None = None,
        returncodes: Mapping[str, int] | None = None,
    ) -> None:
        self.commands: List[RecordedCommand] = []
        self._outputs = dict(outputs or {})
        self._returncodes = dict(returncodes or {})

    @staticmethod
    def _record_entry(
        *,
        command: Sequence[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
        stream: bool,
    ) -> RecordedCommand:
        return RecordedCommand(
            command=[str(part) for part in command],
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env else {},
            note=note,
            stream=stream,
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        on_output: OutputSink | None = None,
    ) -> CommandResult:
        entry = self._record_entry(command=command, cwd=cwd, env=env, note=note, stream=stream)
        self.commands.append(entry)
        key = entry.command[0]
        if stream and on_output is not None:
            for line in self._outputs.get(key, ()):
                on_output(line)
        returncode = self._returncodes.get(key, 0)
        if check and returncode != 0:
            raise ProcessError(
                f"command failed with exit code {returncode}: {_describe(entry.command)}",
                executable=key,
                kind=ProcessErrorKind.NON_ZERO_EXIT,
                returncode=returncode,
            )
        return CommandResult(command=entry.command, returncode=returncode, stdout="", stderr="", streamed=stream)


__all__ = [
    "CommandResult",
    "CommandRunner",
    "OutputSink",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
]
