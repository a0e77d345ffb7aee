"""Command line interface for the native library build orchestrator."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List
import os
import sys

from .clean import clean_intermediates, clean_platform
from .command_runner import CommandError, RecordingCommandRunner, SubprocessCommandRunner
from .console import configure_logging
from .delegate import NativeBuilder
from .environment import resolve_environment
from .errors import CompileError, GroupBuildError, LinkError, NativesError
from .group import GroupBuilder
from .settings import CONFIG_DIR_VARIABLE, ConfigurationStore
from .validation import validate_registry

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _split_config_values(values: Iterable[str]) -> List[str]:
    parts: List[str] = []
    for value in values:
        if not value:
            continue
        for segment in value.split(os.pathsep):
            trimmed = segment.strip()
            if trimmed:
                parts.append(trimmed)
    return parts


def _resolve_config_directories(workspace: Path, cli_values: Iterable[str]) -> List[Path]:
    entries = _split_config_values([os.environ.get(CONFIG_DIR_VARIABLE, "")])
    entries.extend(_split_config_values(cli_values))
    config_dirs: List[Path] = [workspace / "config"]
    for entry in entries:
        path = Path(entry)
        config_dirs.append(path if path.is_absolute() else workspace / path)
    return config_dirs


def _load_configuration_store(args: Namespace, workspace: Path) -> ConfigurationStore:
    directories = _resolve_config_directories(workspace, getattr(args, "config_dirs", []))
    store = ConfigurationStore.from_directories(workspace, directories)
    configure_logging(
        store.global_config.log_level,
        store.global_config.log_file,
        verbose=bool(getattr(args, "verbose", False)),
    )
    return store


def _emit_dry_run_output(runner: RecordingCommandRunner) -> None:
    for line in runner.iter_formatted():
        print(line)


def _print_error(exc: NativesError) -> None:
    print(f"Error: {exc}", file=sys.stderr)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="natives", description="Build the native library for one or more target platforms")
    parser.add_argument(
        "-C",
        "--config-dir",
        dest="config_dirs",
        action="append",
        default=[],
        metavar="PATH",
        help="Additional configuration directory (repeat or separate with PATH separator)",
    )
    parser.add_argument("--root", help="Project root (defaults to the current directory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build natives for targets or target groups")
    build_parser.add_argument("targets", nargs="*", metavar="TARGET", help="Leaf target or group name")
    build_parser.add_argument("-j", "--jobs", type=int, help="Number of targets to build in parallel")
    build_parser.add_argument("--fail-fast", action="store_true", help="Stop at the first failing target")
    build_parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")
    build_parser.add_argument("--debug", action="store_true", help="Keep debug-only compiler settings")

    clean_parser = subparsers.add_parser("clean", help="Remove intermediate objects, and optionally built libraries")
    clean_parser.add_argument("platform", nargs="?", help="Target, group or platform directory whose libraries to remove")

    subparsers.add_parser("list", help="List targets and target groups")
    subparsers.add_parser("validate", help="Validate the target catalog and configuration")

    crosstools_parser = subparsers.add_parser("crosstools", help="Install cross-compilation toolchains (Debian hosts)")
    crosstools_parser.add_argument("-n", "--dry-run", action="store_true", help="Print the install command only")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path(args.root).resolve() if getattr(args, "root", None) else Path.cwd()

    handlers = {
        "build": _handle_build,
        "clean": _handle_clean,
        "list": _handle_list,
        "validate": _handle_validate,
        "crosstools": _handle_crosstools,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise ValueError(f"Unknown command: {args.command}")
    try:
        return handler(args, workspace)
    except NativesError as exc:
        _print_error(exc)
        return EXIT_USAGE


def _handle_build(args: Namespace, workspace: Path) -> int:
    store = _load_configuration_store(args, workspace)
    registry = store.registry
    targets: List[str] = list(getattr(args, "targets", []) or [])

    defaults = store.defaults
    if getattr(args, "debug", False):
        defaults = replace(defaults, debug=True)

    dry_run = bool(getattr(args, "dry_run", False))
    runner = _make_runner(dry_run)
    group = GroupBuilder(
        registry=registry,
        defaults=defaults,
        environment=resolve_environment,
        builder=NativeBuilder(runner),
        jobs=getattr(args, "jobs", None) or store.global_config.jobs,
        fail_fast=bool(getattr(args, "fail_fast", False)),
    )

    try:
        artifacts = group.build_targets(targets)
    except GroupBuildError as exc:
        for artifact in exc.artifacts:
            print(f"Built {artifact.path}")
        print(f"Build failed for {len(exc.failures)} target(s):", file=sys.stderr)
        for target, error in exc.failures:
            print(f"  [{target}] {error}", file=sys.stderr)
        return EXIT_FAILURE
    except (CompileError, LinkError) as exc:
        _print_error(exc)
        return EXIT_FAILURE
    finally:
        if isinstance(runner, RecordingCommandRunner):
            _emit_dry_run_output(runner)

    for artifact in artifacts:
        print(f"{'Would build' if dry_run else 'Built'} {artifact.path}")
    return EXIT_OK


def _handle_clean(args: Namespace, workspace: Path) -> int:
    store = _load_configuration_store(args, workspace)
    platform = getattr(args, "platform", None)
    if platform:
        removed = clean_platform(platform, store.defaults, store.registry)
    else:
        removed = clean_intermediates(store.defaults)
        print(
            "Only intermediate build objects were removed. To also remove built libraries, "
            "run: natives clean <target|group|platform>",
            file=sys.stderr,
        )
    for path in removed:
        print(f"Removed {path}")
    return EXIT_OK


def _handle_list(args: Namespace, workspace: Path) -> int:
    store = _load_configuration_store(args, workspace)
    registry = store.registry
    defaults = store.defaults

    headers = ["Target", "Platform", "Variant", "Type", "Compiler"]
    rows: List[dict[str, str]] = []
    for name, record in registry.targets.items():
        rows.append(
            {
                "Target": name,
                "Platform": record.platform,
                "Variant": record.variant or "-",
                "Type": record.effective_library_type.value,
                "Compiler": record.compiler or defaults.compiler,
            }
        )

    widths = {header: len(header) for header in headers}
    for row in rows:
        for header in headers:
            widths[header] = max(widths[header], len(row[header]))

    def _format(row: dict[str, str]) -> str:
        return "  ".join(row.get(header, "").ljust(widths[header]) for header in headers).rstrip()

    print(_format({header: header for header in headers}))
    print("  ".join("-" * widths[header] for header in headers))
    for row in rows:
        print(_format(row))

    if registry.aggregates:
        print()
        print("Groups:")
        for name, members in registry.aggregates.items():
            print(f"  {name}: {' '.join(members)}")
    return EXIT_OK


def _handle_validate(args: Namespace, workspace: Path) -> int:
    store = _load_configuration_store(args, workspace)
    errors = validate_registry(store.registry, store.defaults)
    if errors:
        print("Validation failed:")
        for message in errors:
            print(f"  {message}")
        return EXIT_FAILURE
    print("Validation successful")
    return EXIT_OK


def _handle_crosstools(args: Namespace, workspace: Path) -> int:
    store = _load_configuration_store(args, workspace)
    packages = sorted({record.requires for record in store.registry.targets.values() if record.requires})
    command = ["apt", "install", "--install-recommends", *packages]
    runner = _make_runner(bool(getattr(args, "dry_run", False)))
    try:
        runner.run(command, note="crosstools")
    except CommandError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    if isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
