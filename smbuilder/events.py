"""Event bus used by the engine to report progress to its host."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Protocol, Type, TypeVar, runtime_checkable
import sys


class Severity(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class StageStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"


class ArtifactKind(str, Enum):
    TEXTURE_PACK = "texture-pack"
    CONTENT_PACK = "content-pack"
    SCRIPT = "script"


@dataclass(frozen=True, slots=True)
class StageEvent:
    """A setup or post-build stage started or completed."""

    stage: Any
    status: StageStatus


@dataclass(frozen=True, slots=True)
class LogEvent:
    severity: Severity
    message: str


@dataclass(frozen=True, slots=True)
class CloneProgressEvent:
    received_objects: int
    total_objects: int
    received_bytes: int

    @property
    def fraction(self) -> float:
        if self.total_objects <= 0:
            return 0.0
        return self.received_objects / self.total_objects


@dataclass(frozen=True, slots=True)
class CompilerOutputEvent:
    line: str


@dataclass(frozen=True, slots=True)
class PostBuildEvent:
    kind: ArtifactKind
    name: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class SkippedBuildEvent:
    """Compilation was skipped because the artifact already exists."""

    artifact: str

    @property
    def severity(self) -> Severity:
        return Severity.WARN

    @property
    def message(self) -> str:
        return f"not building the spec: the executable at {self.artifact} already exists!"


Event = StageEvent | LogEvent | CloneProgressEvent | CompilerOutputEvent | PostBuildEvent | SkippedBuildEvent

E = TypeVar("E")


@runtime_checkable
class EventSink(Protocol):
    """Anything that can receive engine events."""

    def emit(self, event: Event) -> None:
        ...


class EventBus:
    """Fan events out to subscribed sinks in emission order.

    ``emit`` may be called from the git client's progress callback, so it
    takes no lock and never touches orchestrator state.
    """

    def __init__(self, sinks: Iterable[EventSink | Callable[[Event], None]] = ()) -> None:
        self._subscribers: List[Callable[[Event], None]] = []
        for sink in sinks:
            self.subscribe(sink)

    def subscribe(self, sink: EventSink | Callable[[Event], None]) -> None:
        if isinstance(sink, EventSink):
            self._subscribers.append(sink.emit)
        else:
            self._subscribers.append(sink)

    def emit(self, event: Event) -> None:
        for subscriber in tuple(self._subscribers):
            subscriber(event)

    def info(self, message: str) -> None:
        self.emit(LogEvent(Severity.INFO, message))

    def warn(self, message: str) -> None:
        self.emit(LogEvent(Severity.WARN, message))

    def error(self, message: str) -> None:
        self.emit(LogEvent(Severity.ERROR, message))


class RecordingEventSink:
    """Sink that keeps every event; used by tests and embedding hosts."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [event for event in self.events if isinstance(event, event_type)]

    def logs(self, severity: Severity | None = None) -> List[LogEvent]:
        return [
            event
            for event in self.of_type(LogEvent)
            if severity is None or event.severity == severity
        ]

    def stages(self, status: StageStatus = StageStatus.STARTED) -> List[Any]:
        return [event.stage for event in self.of_type(StageEvent) if event.status == status]


class ConsoleEventSink:
    """Render events as console lines with a configurable level.

    Levels: none < error < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(self, level: str = "info", *, stream=None, error_stream=None) -> None:
        self.level_name = level
        self.level = self.LEVELS.get(level, 0)
        self._stream = stream
        self._error_stream = error_stream

    def _out(self, text: str) -> None:
        print(text, file=self._stream or sys.stdout)

    def _err(self, text: str) -> None:
        print(text, file=self._error_stream or sys.stderr)

    def emit(self, event: Event) -> None:
        if isinstance(event, LogEvent):
            if event.severity == Severity.ERROR:
                if self.level >= self.LEVELS["error"]:
                    self._err(f"[ERROR] {event.message}")
            elif self.level >= self.LEVELS["info"]:
                tag = "WARN" if event.severity == Severity.WARN else "INFO"
                self._out(f"[{tag}] {event.message}")
        elif isinstance(event, SkippedBuildEvent):
            if self.level >= self.LEVELS["info"]:
                self._out(f"[WARN] {event.message}")
        elif isinstance(event, StageEvent):
            if self.level >= self.LEVELS["info"] and event.status == StageStatus.STARTED:
                label = getattr(event.stage, "value", event.stage)
                self._out(f"[STAGE] {label}")
        elif isinstance(event, CompilerOutputEvent):
            if self.level >= self.LEVELS["info"]:
                self._out(f"make: {event.line}")
        elif isinstance(event, PostBuildEvent):
            if self.level >= self.LEVELS["info"]:
                suffix = f" ({event.description})" if event.description else ""
                self._out(f"[POST] {event.kind.value}: {event.name}{suffix}")
        elif isinstance(event, CloneProgressEvent):
            if self.level >= self.LEVELS["debug"]:
                self._out(
                    f"[DEBUG] clone: {event.received_objects}/{event.total_objects} objects, "
                    f"{event.received_bytes} bytes"
                )


__all__ = [
    "ArtifactKind",
    "CloneProgressEvent",
    "CompilerOutputEvent",
    "ConsoleEventSink",
    "Event",
    "EventBus",
    "EventSink",
    "LogEvent",
    "PostBuildEvent",
    "RecordingEventSink",
    "Severity",
    "SkippedBuildEvent",
    "StageEvent",
    "StageStatus",
]
