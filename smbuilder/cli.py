"""Command line interface for smbuilder."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from .build import Builder
from .errors import BuildCancelled, BuildError
from .events import ConsoleEventSink, EventBus
from .planner import artifact_path, plan
from .romformat import N64RomTool
from .spec_io import load_spec
from .validation import validate_spec

EXIT_CANCELLED = 130


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="smbuilder", description="Build SM64 source ports from a spec file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Set up, compile and customize a spec")
    build_parser.add_argument("spec", type=Path, help="Path to the spec file (YAML, JSON or TOML)")
    build_parser.add_argument("--base-dir", type=Path, help="Directory holding the build (default: next to the spec)")
    build_parser.add_argument(
        "--log-level",
        choices=sorted(ConsoleEventSink.LEVELS, key=ConsoleEventSink.LEVELS.get),
        default="info",
        help="Console verbosity",
    )

    plan_parser = subparsers.add_parser("plan", help="Show the setup stages a build still needs")
    plan_parser.add_argument("spec", type=Path, help="Path to the spec file")
    plan_parser.add_argument("--base-dir", type=Path, help="Directory holding the build (default: next to the spec)")

    validate_parser = subparsers.add_parser("validate", help="Check a spec and its ROM")
    validate_parser.add_argument("spec", type=Path, help="Path to the spec file")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)

    if args.command == "build":
        return _handle_build(args)
    if args.command == "plan":
        return _handle_plan(args)
    if args.command == "validate":
        return _handle_validate(args)
    raise ValueError(f"Unknown command: {args.command}")


def _base_dir(args: Namespace) -> Path:
    if args.base_dir is not None:
        return args.base_dir
    return args.spec.resolve().parent


def _handle_build(args: Namespace) -> int:
    console = ConsoleEventSink(args.log_level)
    try:
        spec = load_spec(args.spec)
    except BuildError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    base_dir = _base_dir(args)
    try:
        base_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        print(f"[ERROR] failed to create the base directory {base_dir}: {exc}", file=sys.stderr)
        return 1

    result = Builder(spec, base_dir, console).build()
    if result.ok:
        return 0
    if isinstance(result.error, BuildCancelled):
        return EXIT_CANCELLED
    return 1


def _handle_plan(args: Namespace) -> int:
    try:
        spec = load_spec(args.spec)
    except BuildError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    base_dir = _base_dir(args)
    stages = plan(spec, base_dir)
    if not stages:
        print("Nothing to set up")
    for stage in stages:
        print(stage.value)
    print(f"Executable: {artifact_path(spec, base_dir)}")
    return 0


def _handle_validate(args: Namespace) -> int:
    events = EventBus([ConsoleEventSink("info")])
    try:
        spec = load_spec(args.spec)
        validate_spec(spec, events, N64RomTool())
    except BuildError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    print("Validation successful")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
