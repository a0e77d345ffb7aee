"""Target catalog: leaf target records, aggregate groups and the registry."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from .config_loader import normalize_string_list
from .errors import ConfigurationError, UnknownAggregate, UnknownTarget


class LibraryType(str, Enum):
    SO = "so"
    DYLIB = "dylib"
    JNILIB = "jnilib"
    DLL = "dll"

    @property
    def extension(self) -> str:
        return self.value


class LinkMode(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


FAMILY_LIBRARY_TYPES: Mapping[str, LibraryType] = MappingProxyType(
    {
        "linux": LibraryType.SO,
        "freebsd": LibraryType.SO,
        "osx": LibraryType.JNILIB,
        "windows": LibraryType.DLL,
    }
)


@dataclass(frozen=True, slots=True)
class LinkerFlags:
    """Linker flag deltas together with how they combine with the defaults."""

    flags: Tuple[str, ...] = ()
    mode: LinkMode = LinkMode.APPEND

    @classmethod
    def append(cls, *flags: str) -> "LinkerFlags":
        return cls(flags=tuple(flags), mode=LinkMode.APPEND)

    @classmethod
    def replace(cls, *flags: str) -> "LinkerFlags":
        return cls(flags=tuple(flags), mode=LinkMode.REPLACE)


@dataclass(frozen=True, slots=True)
class TargetRecord:
    name: str
    platform: str
    family: str
    variant: str = ""
    library_type: LibraryType | None = None
    compiler: str | None = None
    linker: str | None = None
    host_compilers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    cflags: Tuple[str, ...] = ()
    release_cflags: Tuple[str, ...] = ()
    linker_flags: LinkerFlags = LinkerFlags()
    objects: Tuple[str, ...] | None = None
    extra_objects: Tuple[str, ...] = ()
    requires: str | None = None
    description: str | None = None

    @property
    def effective_library_type(self) -> LibraryType:
        if self.library_type is not None:
            return self.library_type
        return FAMILY_LIBRARY_TYPES.get(self.family, LibraryType.SO)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "TargetRecord":
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Target '{name}' definition must be a mapping")

        allowed_keys = {
            "platform",
            "family",
            "variant",
            "library_type",
            "compiler",
            "linker",
            "host_compilers",
            "cflags",
            "release_cflags",
            "linker_flags",
            "link_mode",
            "objects",
            "extra_objects",
            "requires",
            "description",
        }
        unknown = {str(key) for key in data.keys() if str(key) not in allowed_keys}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigurationError(f"Target '{name}' contains unknown keys: {joined}")

        platform = str(data.get("platform") or "").strip().strip("/")
        if not platform:
            raise ConfigurationError(f"Target '{name}' must declare an output platform directory")
        family = str(data.get("family") or platform.split("/")[0]).strip().lower()

        library_type: LibraryType | None = None
        raw_type = data.get("library_type")
        if raw_type is not None:
            try:
                library_type = LibraryType(str(raw_type).strip().lower())
            except ValueError as exc:
                allowed = ", ".join(item.value for item in LibraryType)
                raise ConfigurationError(
                    f"Target '{name}' has unsupported library_type '{raw_type}' (allowed: {allowed})"
                ) from exc

        raw_mode = str(data.get("link_mode", LinkMode.APPEND.value)).strip().lower()
        try:
            link_mode = LinkMode(raw_mode)
        except ValueError as exc:
            raise ConfigurationError(
                f"Target '{name}' has unsupported link_mode '{raw_mode}' (allowed: append, replace)"
            ) from exc

        host_compilers: Dict[str, str] = {}
        raw_hosts = data.get("host_compilers")
        if isinstance(raw_hosts, Mapping):
            host_compilers = {str(key).lower(): str(value) for key, value in raw_hosts.items()}
        elif raw_hosts is not None:
            raise ConfigurationError(f"Target '{name}' host_compilers must be a mapping")

        def flags(key: str) -> Tuple[str, ...]:
            try:
                return tuple(normalize_string_list(data.get(key), field_name=f"targets.{name}.{key}"))
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(str(exc)) from exc

        objects: Tuple[str, ...] | None = flags("objects") if data.get("objects") is not None else None
        compiler = data.get("compiler")
        linker = data.get("linker")
        requires = data.get("requires")
        description = data.get("description")
        return cls(
            name=name,
            platform=platform,
            family=family,
            variant=str(data.get("variant") or ""),
            library_type=library_type,
            compiler=str(compiler).strip() if compiler else None,
            linker=str(linker).strip() if linker else None,
            host_compilers=MappingProxyType(host_compilers),
            cflags=flags("cflags"),
            release_cflags=flags("release_cflags"),
            linker_flags=LinkerFlags(flags=flags("linker_flags"), mode=link_mode),
            objects=objects,
            extra_objects=flags("extra_objects"),
            requires=str(requires) if requires else None,
            description=str(description) if description else None,
        )


LINUX_CFLAGS = ("-I{{devkit_root}}/include/linux",)
# Fortification runtime checks need a newer glibc than we want to require.
LINUX_RELEASE_CFLAGS = ("-U_FORTIFY_SOURCE",)
FREEBSD_CFLAGS = ("-I{{devkit_root}}/include/freebsd",)
WINDOWS_CFLAGS = ("-I./include/windows", "-I./include/windows/win32")
WINDOWS_LDFLAGS = (
    "-static-libgcc",
    "-Wl,--add-stdcall-alias",
    "-Wl,--no-insert-timestamp",
)
WINDOWS_OBJECTS = ("init.o", "termios.o")


def _linux(
    name: str,
    platform: str,
    *,
    compiler: str | None = None,
    arch_flags: Sequence[str] = (),
    link_arch_flags: Sequence[str] | None = None,
    variant: str = "",
    requires: str | None = None,
    description: str | None = None,
) -> TargetRecord:
    link_flags = tuple(arch_flags if link_arch_flags is None else link_arch_flags)
    return TargetRecord(
        name=name,
        platform=platform,
        family="linux",
        variant=variant,
        compiler=compiler,
        cflags=(*LINUX_CFLAGS, *arch_flags),
        release_cflags=LINUX_RELEASE_CFLAGS,
        linker_flags=LinkerFlags.append(*link_flags),
        requires=requires,
        description=description,
    )


def _arm32(name: str, march: str, *, hard_float: bool, variant: str, extra: Sequence[str] = ()) -> TargetRecord:
    package = "gcc-arm-linux-gnueabihf" if hard_float else "gcc-arm-linux-gnueabi"
    compiler = "arm-linux-gnueabihf-gcc" if hard_float else "arm-linux-gnueabi-gcc"
    return _linux(
        name,
        "linux/ARM_32",
        compiler=compiler,
        arch_flags=(f"-march={march}", *extra),
        variant=variant,
        requires=package,
    )


def _windows(name: str, platform: str, *, compiler: str, bits: str, host_compilers: Mapping[str, str]) -> TargetRecord:
    return TargetRecord(
        name=name,
        platform=platform,
        family="windows",
        library_type=LibraryType.DLL,
        compiler=compiler,
        host_compilers=MappingProxyType(dict(host_compilers)),
        cflags=(*WINDOWS_CFLAGS, bits),
        linker_flags=LinkerFlags.append(*WINDOWS_LDFLAGS, bits),
        extra_objects=WINDOWS_OBJECTS,
        requires="gcc-mingw-w64",
    )


def _build_builtin_targets() -> Dict[str, TargetRecord]:
    records = [
        _linux("linux32", "linux/x86_32", compiler="i686-linux-gnu-gcc", arch_flags=("-m32",), requires="gcc-i686-linux-gnu"),
        _linux("linux64", "linux/x86_64", arch_flags=("-m64",)),
        _arm32("arm32v5", "armv5t", hard_float=False, variant="v5"),
        _arm32("arm32v6", "armv6", hard_float=False, variant="v6"),
        _arm32("arm32v6HF", "armv6", hard_float=True, variant="v6_HF", extra=("-mfpu=vfp", "-marm")),
        _arm32("arm32v7", "armv7-a", hard_float=False, variant="v7"),
        _arm32("arm32v7HF", "armv7-a", hard_float=True, variant="v7_HF"),
        _arm32("arm32v8", "armv8-a", hard_float=False, variant="v8"),
        _arm32("arm32v8HF", "armv8-a", hard_float=True, variant="v8_HF"),
        _linux(
            "arm64v8",
            "linux/ARM_64",
            compiler="aarch64-linux-gnu-gcc",
            arch_flags=("-march=armv8-a",),
            variant="v8",
            requires="gcc-aarch64-linux-gnu",
        ),
        _linux(
            "android",
            "linux/ARM_ANDROID",
            compiler="arm-linux-androideabi-gcc",
            description="Requires an Android NDK on PATH; untested",
        ),
        _linux("ppc", "linux/PPC", compiler="powerpc-linux-gnu-gcc", requires="gcc-powerpc-linux-gnu"),
        TargetRecord(
            name="osx",
            platform="osx",
            family="osx",
            library_type=LibraryType.JNILIB,
            cflags=("-I{{devkit_root}}/include/darwin", "-arch", "arm64"),
            linker_flags=LinkerFlags.replace(
                "-arch",
                "arm64",
                "-dynamiclib",
                "-framework",
                "IOKit",
                "-framework",
                "CoreFoundation",
            ),
            objects=("fuserImp.o", "SerialImp.o"),
            description="Requires a macOS host",
        ),
        TargetRecord(
            name="freebsd32",
            platform="freebsd/x86_32",
            family="freebsd",
            cflags=(*FREEBSD_CFLAGS, "-m32"),
            linker_flags=LinkerFlags.append("-m32"),
            description="Requires a FreeBSD host",
        ),
        TargetRecord(
            name="freebsd64",
            platform="freebsd/x86_64",
            family="freebsd",
            cflags=(*FREEBSD_CFLAGS, "-m64"),
            linker_flags=LinkerFlags.append("-m64"),
            description="Requires a FreeBSD host",
        ),
        TargetRecord(
            name="freebsdarm64v8",
            platform="freebsd/ARM_64",
            family="freebsd",
            variant="v8",
            cflags=FREEBSD_CFLAGS,
            description="Requires an aarch64 FreeBSD host",
        ),
        # TDM-GCC on Windows ships one front end for both word sizes.
        _windows(
            "windows32",
            "windows/x86_32",
            compiler="i686-w64-mingw32-gcc",
            bits="-m32",
            host_compilers={"windows": "x86_64-w64-mingw32-gcc"},
        ),
        _windows("windows64", "windows/x86_64", compiler="x86_64-w64-mingw32-gcc", bits="-m64", host_compilers={}),
    ]
    return {record.name: record for record in records}


BUILTIN_AGGREGATES: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "arm": (
            "arm32v5",
            "arm32v6",
            "arm32v6HF",
            "arm32v7",
            "arm32v7HF",
            "arm32v8",
            "arm32v8HF",
            "arm64v8",
        ),
        # Android toolchains are large and rarely installed, so it stays out of "linux".
        "linux": ("linux32", "linux64", "arm", "ppc"),
        "freebsd": ("freebsd32", "freebsd64"),
        "windows": ("windows32", "windows64"),
    }
)


class TargetRegistry:
    """Read-only catalog of leaf targets and aggregate groups."""

    def __init__(
        self,
        targets: Mapping[str, TargetRecord],
        aggregates: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        overlap = set(targets) & set(aggregates or {})
        if overlap:
            joined = ", ".join(sorted(overlap))
            raise ConfigurationError(f"Names used both as target and group: {joined}")
        self._targets: Mapping[str, TargetRecord] = MappingProxyType(dict(targets))
        self._aggregates: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {name: tuple(members) for name, members in (aggregates or {}).items()}
        )

    @classmethod
    def with_builtins(
        cls,
        targets: Mapping[str, TargetRecord] | None = None,
        aggregates: Mapping[str, Sequence[str]] | None = None,
    ) -> "TargetRegistry":
        merged_targets = _build_builtin_targets()
        merged_targets.update(targets or {})
        merged_aggregates: Dict[str, Sequence[str]] = dict(BUILTIN_AGGREGATES)
        merged_aggregates.update(aggregates or {})
        return cls(merged_targets, merged_aggregates)

    @property
    def targets(self) -> Mapping[str, TargetRecord]:
        return self._targets

    @property
    def aggregates(self) -> Mapping[str, Tuple[str, ...]]:
        return self._aggregates

    def leaf_names(self) -> List[str]:
        return list(self._targets)

    def aggregate_names(self) -> List[str]:
        return list(self._aggregates)

    def names(self) -> List[str]:
        return [*self._targets, *self._aggregates]

    def is_leaf(self, name: str) -> bool:
        return name in self._targets

    def is_aggregate(self, name: str) -> bool:
        return name in self._aggregates

    def lookup(self, target_id: str) -> TargetRecord:
        record = self._targets.get(target_id)
        if record is None:
            raise UnknownTarget(target_id, self.names())
        return record

    def expand(self, aggregate_id: str) -> List[str]:
        if aggregate_id not in self._aggregates:
            raise UnknownAggregate(aggregate_id, self._aggregates)
        leaves: List[str] = []
        self._expand_into(aggregate_id, leaves, visiting=())
        return leaves

    def resolve(self, name: str) -> List[str]:
        """Return the leaf targets named by ``name``, which may be either kind."""

        if name in self._targets:
            return [name]
        if name in self._aggregates:
            return self.expand(name)
        raise UnknownTarget(name, self.names())

    def _expand_into(self, aggregate_id: str, leaves: List[str], *, visiting: Tuple[str, ...]) -> None:
        if aggregate_id in visiting:
            cycle = " -> ".join([*visiting, aggregate_id])
            raise ConfigurationError(f"Circular target group detected: {cycle}")
        for member in self._aggregates[aggregate_id]:
            if member in self._aggregates:
                self._expand_into(member, leaves, visiting=(*visiting, aggregate_id))
            elif member in self._targets:
                if member not in leaves:
                    leaves.append(member)
            else:
                raise UnknownTarget(member, self.names())


def parse_target_definitions(data: Mapping[str, Any]) -> tuple[Dict[str, TargetRecord], Dict[str, Tuple[str, ...]]]:
    """Parse the ``[targets]`` and ``[aggregates]`` tables of a targets file."""

    targets: Dict[str, TargetRecord] = {}
    aggregates: Dict[str, Tuple[str, ...]] = {}

    targets_section = data.get("targets", {})
    if not isinstance(targets_section, Mapping):
        raise ConfigurationError("[targets] must be a table of target definitions")
    for raw_name, raw_value in targets_section.items():
        name = str(raw_name).strip()
        if name:
            targets[name] = TargetRecord.from_mapping(name, raw_value)

    aggregates_section = data.get("aggregates", {})
    if not isinstance(aggregates_section, Mapping):
        raise ConfigurationError("[aggregates] must map group names to target lists")
    for raw_name, raw_members in aggregates_section.items():
        name = str(raw_name).strip()
        if not name:
            continue
        try:
            members = normalize_string_list(raw_members, field_name=f"aggregates.{name}")
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
        aggregates[name] = tuple(members)
    return targets, aggregates


BUILTIN_TARGETS: Mapping[str, TargetRecord] = MappingProxyType(_build_builtin_targets())

__all__ = [
    "BUILTIN_AGGREGATES",
    "BUILTIN_TARGETS",
    "FAMILY_LIBRARY_TYPES",
    "LibraryType",
    "LinkMode",
    "LinkerFlags",
    "TargetRecord",
    "TargetRegistry",
    "parse_target_definitions",
]
