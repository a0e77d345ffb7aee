"""Composition of global defaults and target records into build configurations."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Tuple
import re

from .environment import HostEnvironment
from .errors import ConfigurationError
from .targets import LibraryType, LinkMode, TargetRecord

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

DEFAULT_LIBRARY_NAME = "NRJavaSerial"
DEFAULT_CFLAGS: Tuple[str, ...] = (
    "-I{{devkit_root}}/include",
    "-I./include",
    "-I./include/target",
    "-O3",
    "-fPIC",
    "-c",
    "-Wall",
)
DEFAULT_LINKER_FLAGS: Tuple[str, ...] = ("-fPIC", "-shared")
DEFAULT_OBJECTS: Tuple[str, ...] = ("fixup.o", "fuserImp.o", "SerialImp.o")

# Keeps DLL bytes stable across rebuilds of the same sources.
NO_TIMESTAMP_FLAG = "-Wl,--no-insert-timestamp"


@dataclass(frozen=True, slots=True)
class GlobalDefaults:
    """Settings shared by every target unless a record overrides them."""

    source_dir: Path
    output_root: Path
    build_root: Path
    library_name: str = DEFAULT_LIBRARY_NAME
    compiler: str = "cc"
    linker: str | None = None
    cflags: Tuple[str, ...] = DEFAULT_CFLAGS
    linker_flags: Tuple[str, ...] = DEFAULT_LINKER_FLAGS
    objects: Tuple[str, ...] = DEFAULT_OBJECTS
    debug: bool = False


@dataclass(frozen=True, slots=True)
class EffectiveConfiguration:
    """Fully resolved settings for building exactly one target."""

    target: str
    compiler: str
    linker: str
    cflags: Tuple[str, ...]
    linker_flags: Tuple[str, ...]
    objects: Tuple[str, ...]
    source_dir: Path
    scratch_dir: Path
    artifact_path: Path
    library_type: LibraryType
    platform: str
    variant: str

    def source_for(self, obj: str) -> Path:
        return self.source_dir / f"{Path(obj).stem}.c"

    def object_path(self, obj: str) -> Path:
        return self.scratch_dir / obj


def artifact_filename(library_name: str, variant: str, library_type: LibraryType) -> str:
    return f"lib{library_name}{variant}.{library_type.extension}"


def artifact_path(defaults: GlobalDefaults, record: TargetRecord) -> Path:
    filename = artifact_filename(defaults.library_name, record.variant, record.effective_library_type)
    return defaults.output_root / record.platform / filename


def scratch_dir(defaults: GlobalDefaults, target: str) -> Path:
    return defaults.build_root / target


def expand_placeholders(flags: Iterable[str], values: Mapping[str, str], *, target: str) -> Tuple[str, ...]:
    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values:
            available = ", ".join(sorted(values))
            raise ConfigurationError(
                f"Unknown placeholder '{{{{{key}}}}}' in flags for target '{target}'",
                hint=f"Available placeholders: {available}",
            )
        return values[key]

    return tuple(_PLACEHOLDER_PATTERN.sub(substitute, flag) for flag in flags)


def _select_compiler(defaults: GlobalDefaults, record: TargetRecord, host_os: str) -> str:
    host_compiler = record.host_compilers.get(host_os)
    if host_compiler:
        return host_compiler
    if record.compiler:
        return record.compiler
    return defaults.compiler


def _select_linker(defaults: GlobalDefaults, record: TargetRecord, host_os: str, compiler: str) -> str:
    if record.linker:
        return record.linker
    # A target with its own toolchain links through that toolchain.
    if record.host_compilers.get(host_os) or record.compiler:
        return compiler
    return defaults.linker or compiler


def compose(
    defaults: GlobalDefaults,
    record: TargetRecord,
    environment: HostEnvironment,
) -> EffectiveConfiguration:
    """Layer ``record`` over ``defaults`` for the given host.

    Compiler flags are always appended to the defaults. Linker flags are
    appended unless the record asks for ``LinkMode.REPLACE``. A fresh value is
    returned on every call; nothing in it refers back to its inputs.
    """

    compiler = _select_compiler(defaults, record, environment.host_os)
    linker = _select_linker(defaults, record, environment.host_os, compiler)

    cflags = [*defaults.cflags, *record.cflags]
    if not defaults.debug:
        cflags.extend(record.release_cflags)

    if record.linker_flags.mode is LinkMode.REPLACE:
        linker_flags = list(record.linker_flags.flags)
    else:
        linker_flags = [*defaults.linker_flags, *record.linker_flags.flags]

    library_type = record.effective_library_type
    if library_type is LibraryType.DLL and NO_TIMESTAMP_FLAG not in linker_flags:
        linker_flags.append(NO_TIMESTAMP_FLAG)

    base_objects = record.objects if record.objects is not None else defaults.objects
    objects = (*base_objects, *record.extra_objects)

    placeholders = environment.placeholders()
    return EffectiveConfiguration(
        target=record.name,
        compiler=compiler,
        linker=linker,
        cflags=expand_placeholders(cflags, placeholders, target=record.name),
        linker_flags=expand_placeholders(linker_flags, placeholders, target=record.name),
        objects=tuple(objects),
        source_dir=defaults.source_dir,
        scratch_dir=scratch_dir(defaults, record.name),
        artifact_path=artifact_path(defaults, record),
        library_type=library_type,
        platform=record.platform,
        variant=record.variant,
    )


__all__ = [
    "DEFAULT_CFLAGS",
    "DEFAULT_LIBRARY_NAME",
    "DEFAULT_LINKER_FLAGS",
    "DEFAULT_OBJECTS",
    "EffectiveConfiguration",
    "GlobalDefaults",
    "NO_TIMESTAMP_FLAG",
    "artifact_filename",
    "artifact_path",
    "compose",
    "expand_placeholders",
    "scratch_dir",
]
