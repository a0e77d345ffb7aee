"""Multi-target native library build orchestrator."""
from __future__ import annotations

from .composer import EffectiveConfiguration, GlobalDefaults, compose
from .delegate import BuildArtifact, NativeBuilder
from .environment import HostEnvironment, resolve_environment
from .group import GroupBuilder
from .targets import LibraryType, LinkMode, LinkerFlags, TargetRecord, TargetRegistry

__version__ = "0.1.0"

__all__ = [
    "BuildArtifact",
    "EffectiveConfiguration",
    "GlobalDefaults",
    "GroupBuilder",
    "HostEnvironment",
    "LibraryType",
    "LinkMode",
    "LinkerFlags",
    "NativeBuilder",
    "TargetRecord",
    "TargetRegistry",
    "compose",
    "resolve_environment",
]
