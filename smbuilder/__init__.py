"""Build orchestration for Super Mario 64 source ports."""
from __future__ import annotations

from .build import Builder, BuildResult, BuildState
from .cancellation import CancellationToken
from .errors import (
    BuildCancelled,
    BuildError,
    FilesystemError,
    InvariantViolated,
    NetworkError,
    ProcessError,
    ValidationError,
)
from .events import EventBus, RecordingEventSink
from .planner import PostBuildStage, SetupStage, plan
from .spec import Spec, SpecBuilder
from .spec_io import load_spec

__all__ = [
    "BuildCancelled",
    "BuildError",
    "BuildResult",
    "BuildState",
    "Builder",
    "CancellationToken",
    "EventBus",
    "FilesystemError",
    "InvariantViolated",
    "NetworkError",
    "PostBuildStage",
    "ProcessError",
    "RecordingEventSink",
    "SetupStage",
    "Spec",
    "SpecBuilder",
    "ValidationError",
    "load_spec",
    "plan",
]
