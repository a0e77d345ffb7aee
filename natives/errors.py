"""Error types raised while resolving and building native targets."""
from __future__ import annotations

from typing import Iterable, List, Mapping, Sequence, Tuple


class NativesError(Exception):
    """Base error carrying an optional hint and key/value context."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for key, value in self.context.items():
            if value:
                parts.append(f"  {key}: {value}")
        return "\n".join(parts)


class EnvironmentMissing(NativesError):
    """Raised when the development kit root cannot be located."""


class ConfigurationError(NativesError):
    """Raised for malformed configuration files or target definitions."""


class NoTargetSpecified(NativesError):
    def __init__(self, available: Iterable[str]) -> None:
        self.available = sorted(available)
        super().__init__(
            "You must specify a target platform to build its natives",
            hint=f"Valid targets: {', '.join(self.available) or '<none>'}",
        )


class UnknownTarget(NativesError):
    def __init__(self, name: str, available: Iterable[str]) -> None:
        self.name = name
        self.available = sorted(available)
        super().__init__(
            f"Unknown target '{name}'",
            hint=f"Valid targets: {', '.join(self.available) or '<none>'}",
        )


class UnknownAggregate(NativesError):
    def __init__(self, name: str, available: Iterable[str]) -> None:
        self.name = name
        self.available = sorted(available)
        super().__init__(
            f"Unknown target group '{name}'",
            hint=f"Valid groups: {', '.join(self.available) or '<none>'}",
        )


class CompileError(NativesError):
    """Raised when the compiler fails for one object of one target."""

    def __init__(self, target: str, obj: str, diagnostic: str) -> None:
        self.target = target
        self.object = obj
        self.diagnostic = diagnostic
        super().__init__(
            f"Compilation of '{obj}' failed for target '{target}'",
            context={"diagnostic": diagnostic.strip()},
        )


class LinkError(NativesError):
    """Raised when the link step fails for a target."""

    def __init__(self, target: str, diagnostic: str) -> None:
        self.target = target
        self.diagnostic = diagnostic
        super().__init__(
            f"Linking failed for target '{target}'",
            context={"diagnostic": diagnostic.strip()},
        )


class GroupBuildError(NativesError):
    """Aggregates every leaf failure of a group build."""

    def __init__(
        self,
        group: str,
        failures: Sequence[Tuple[str, NativesError]],
        artifacts: Sequence[object] = (),
    ) -> None:
        self.group = group
        self.failures: List[Tuple[str, NativesError]] = list(failures)
        self.artifacts = list(artifacts)
        names = ", ".join(target for target, _ in self.failures)
        super().__init__(
            f"{len(self.failures)} target(s) of '{group}' failed: {names}",
            context={target: error.message for target, error in self.failures},
        )

    @property
    def failed_targets(self) -> List[str]:
        return [target for target, _ in self.failures]


__all__ = [
    "CompileError",
    "ConfigurationError",
    "EnvironmentMissing",
    "GroupBuildError",
    "LinkError",
    "NativesError",
    "NoTargetSpecified",
    "UnknownAggregate",
    "UnknownTarget",
]
