"""The single compile-and-link procedure shared by every target."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple
import hashlib
import logging

from .command_runner import CommandError, CommandRunner
from .composer import EffectiveConfiguration
from .errors import CompileError, LinkError

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    target: str
    path: Path
    objects: Tuple[Path, ...]
    sha256: str = ""


def _digest(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 16), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class NativeBuilder:
    """Compiles and links one target from an :class:`EffectiveConfiguration`.

    The builder holds nothing but the command runner, so concurrent calls
    for different targets share no configuration state.
    """

    def __init__(self, command_runner: CommandRunner) -> None:
        self._command_runner = command_runner

    def compile_command(self, config: EffectiveConfiguration, obj: str) -> List[str]:
        return [
            config.compiler,
            *config.cflags,
            str(config.source_for(obj)),
            "-o",
            str(config.object_path(obj)),
        ]

    def link_command(self, config: EffectiveConfiguration) -> List[str]:
        return [
            config.linker,
            *config.linker_flags,
            "-o",
            str(config.artifact_path),
            *(str(config.object_path(obj)) for obj in config.objects),
        ]

    def build(self, config: EffectiveConfiguration) -> BuildArtifact:
        dry_run = self._command_runner.dry_run
        log.info("Building %s -> %s", config.target, config.artifact_path)
        if not dry_run:
            config.scratch_dir.mkdir(parents=True, exist_ok=True)

        produced: List[Path] = []
        for obj in config.objects:
            try:
                self._command_runner.run(
                    self.compile_command(config, obj),
                    cwd=config.source_dir,
                    note=config.target,
                )
            except CommandError as exc:
                raise CompileError(config.target, obj, exc.result.diagnostic) from exc
            produced.append(config.object_path(obj))

        if not dry_run:
            config.artifact_path.parent.mkdir(parents=True, exist_ok=True)
            config.artifact_path.unlink(missing_ok=True)
        try:
            self._command_runner.run(
                self.link_command(config),
                cwd=config.source_dir,
                note=config.target,
            )
        except CommandError as exc:
            raise LinkError(config.target, exc.result.diagnostic) from exc

        if dry_run:
            return BuildArtifact(target=config.target, path=config.artifact_path, objects=tuple(produced))
        if not config.artifact_path.is_file():
            raise LinkError(config.target, f"linker did not produce {config.artifact_path}")
        artifact = BuildArtifact(
            target=config.target,
            path=config.artifact_path,
            objects=tuple(produced),
            sha256=_digest(config.artifact_path),
        )
        log.info("Built %s (%s)", artifact.path, artifact.sha256[:12])
        return artifact


__all__ = ["BuildArtifact", "NativeBuilder"]
