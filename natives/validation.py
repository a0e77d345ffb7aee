"""Consistency checks over the target catalog."""
from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Dict, List

from .composer import GlobalDefaults, artifact_path, compose
from .environment import HostEnvironment
from .errors import NativesError
from .targets import TargetRegistry


def validate_registry(
    registry: TargetRegistry,
    defaults: GlobalDefaults,
    *,
    host_os: str = "linux",
) -> list[str]:
    """Return a list of problems; an empty list means the catalog is usable."""

    errors: list[str] = []
    probe = HostEnvironment(devkit_root=Path("/devkit"), host_os=host_os, host_arch="x86_64")

    owners: Dict[Path, List[str]] = {}
    for name, record in registry.targets.items():
        platform = PurePosixPath(record.platform)
        if platform.is_absolute() or ".." in platform.parts:
            errors.append(f"Target '{name}' platform '{record.platform}' must be a relative path below the output root")
        try:
            config = compose(defaults, record, probe)
        except NativesError as exc:
            errors.append(exc.message)
            continue
        if not config.compiler:
            errors.append(f"Target '{name}' resolves to an empty compiler")
        if not config.objects:
            errors.append(f"Target '{name}' has no objects to build")
        owners.setdefault(artifact_path(defaults, record), []).append(name)

    for path, names in owners.items():
        if len(names) > 1:
            errors.append(f"Targets {', '.join(sorted(names))} all produce {path}")

    for name, members in registry.aggregates.items():
        if not members:
            errors.append(f"Target group '{name}' has no members")
            continue
        try:
            registry.expand(name)
        except NativesError as exc:
            errors.append(f"Target group '{name}': {exc.message}")

    return errors


__all__ = ["validate_registry"]
