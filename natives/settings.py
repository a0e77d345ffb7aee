"""Project configuration: global defaults, logging options and the target registry."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Sequence, Tuple
import logging

from .composer import (
    DEFAULT_CFLAGS,
    DEFAULT_LIBRARY_NAME,
    DEFAULT_LINKER_FLAGS,
    DEFAULT_OBJECTS,
    GlobalDefaults,
)
from .config_loader import (
    collect_config_files,
    load_config_file,
    merge_mappings,
    normalize_string_list,
    resolve_config_paths,
)
from .errors import ConfigurationError
from .targets import TargetRecord, TargetRegistry, parse_target_definitions

log = logging.getLogger(__name__)

CONFIG_DIR_VARIABLE = "NATIVES_CONFIG_DIR"


def _as_path(root: Path, value: Any, default: str) -> Path:
    path = Path(str(value)) if value else Path(default)
    return path if path.is_absolute() else root / path


def _as_flags(section: Mapping[str, Any], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if key not in section:
        return default
    try:
        return tuple(normalize_string_list(section.get(key), field_name=f"global.{key}"))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(exc)) from exc


@dataclass(slots=True)
class GlobalConfig:
    defaults: GlobalDefaults
    jobs: int | None = None
    log_level: str = "warning"
    log_file: str | None = None

    @classmethod
    def from_mapping(cls, root: Path, data: Mapping[str, Any]) -> "GlobalConfig":
        section = data.get("global", {}) if isinstance(data, Mapping) else {}
        if not isinstance(section, Mapping):
            raise ConfigurationError("[global] must be a table")

        jobs_value = section.get("jobs")
        jobs: int | None = None
        if jobs_value is not None:
            if isinstance(jobs_value, bool) or not isinstance(jobs_value, int) or jobs_value < 1:
                raise ConfigurationError("global.jobs must be a positive integer")
            jobs = jobs_value

        linker = section.get("linker")
        defaults = GlobalDefaults(
            source_dir=_as_path(root, section.get("source_dir"), "src/main/c"),
            output_root=_as_path(root, section.get("output_root"), "resources/native"),
            build_root=_as_path(root, section.get("build_root"), "build"),
            library_name=str(section.get("library_name") or DEFAULT_LIBRARY_NAME),
            compiler=str(section.get("compiler") or "cc"),
            linker=str(linker) if linker else None,
            cflags=_as_flags(section, "cflags", DEFAULT_CFLAGS),
            linker_flags=_as_flags(section, "linker_flags", DEFAULT_LINKER_FLAGS),
            objects=_as_flags(section, "objects", DEFAULT_OBJECTS),
            debug=bool(section.get("debug", False)),
        )
        return cls(
            defaults=defaults,
            jobs=jobs,
            log_level=str(section.get("log_level", "warning")),
            log_file=str(section.get("log_file")) if section.get("log_file") else None,
        )


@dataclass(slots=True)
class ConfigurationStore:
    root: Path
    global_config: GlobalConfig
    registry: TargetRegistry
    config_dirs: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def defaults(self) -> GlobalDefaults:
        return self.global_config.defaults

    @classmethod
    def builtin(cls, root: Path) -> "ConfigurationStore":
        return cls(
            root=root,
            global_config=GlobalConfig.from_mapping(root, {}),
            registry=TargetRegistry.with_builtins(),
        )

    @classmethod
    def from_directories(cls, root: Path, directories: Iterable[Path]) -> "ConfigurationStore":
        resolved_dirs, missing_dirs = resolve_config_paths(root, directories)
        for path in missing_dirs:
            log.debug("Configuration directory not found, skipping: %s", path)

        global_data: Mapping[str, Any] = {}
        targets: Dict[str, TargetRecord] = {}
        aggregates: Dict[str, Sequence[str]] = {}

        for config_dir in resolved_dirs:
            try:
                files = collect_config_files(config_dir)
                global_path = files.get("config")
                if global_path is not None:
                    global_data = merge_mappings(global_data, load_config_file(global_path))
                targets_path = files.get("targets")
                if targets_path is not None:
                    parsed_targets, parsed_aggregates = parse_target_definitions(load_config_file(targets_path))
                    targets.update(parsed_targets)
                    aggregates.update(parsed_aggregates)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(str(exc), context={"directory": str(config_dir)}) from exc

        return cls(
            root=root,
            config_dirs=resolved_dirs,
            global_config=GlobalConfig.from_mapping(root, global_data),
            registry=TargetRegistry.with_builtins(targets, aggregates),
        )


__all__ = ["CONFIG_DIR_VARIABLE", "ConfigurationStore", "GlobalConfig"]
