"""Removal of intermediate objects and produced libraries."""
from __future__ import annotations

from pathlib import Path
from typing import List
import logging
import shutil

from .composer import GlobalDefaults, artifact_path, scratch_dir
from .errors import ConfigurationError, UnknownTarget
from .targets import TargetRegistry

log = logging.getLogger(__name__)


def _remove_tree(path: Path) -> bool:
    if not path.exists():
        return False
    log.info("Removing %s", path)
    shutil.rmtree(path)
    return True


def _prune_empty_parents(path: Path, stop: Path) -> None:
    current = path.parent
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent


def clean_intermediates(defaults: GlobalDefaults) -> List[Path]:
    """Remove every intermediate object; produced libraries are kept."""

    return [defaults.build_root] if _remove_tree(defaults.build_root) else []


def clean_platform(name: str, defaults: GlobalDefaults, registry: TargetRegistry) -> List[Path]:
    """Remove intermediates and the libraries produced for ``name``.

    ``name`` may be a directory below the output root such as ``linux`` or
    ``windows/x86_64``, a leaf target or a target group. An existing
    directory wins, so ``clean linux`` also removes libraries of targets
    that no group lists.
    """

    removed = clean_intermediates(defaults)

    output_root = defaults.output_root.resolve()
    platform_dir = (defaults.output_root / name).resolve()
    inside = output_root in platform_dir.parents
    if inside and platform_dir.is_dir():
        if _remove_tree(platform_dir):
            removed.append(platform_dir)
        return removed

    if registry.is_leaf(name) or registry.is_aggregate(name):
        for leaf in registry.resolve(name):
            path = artifact_path(defaults, registry.lookup(leaf))
            if path.exists():
                log.info("Removing %s", path)
                path.unlink()
                removed.append(path)
                _prune_empty_parents(path, defaults.output_root)
            leaf_scratch = scratch_dir(defaults, leaf)
            if _remove_tree(leaf_scratch):
                removed.append(leaf_scratch)
        return removed

    if not inside:
        raise ConfigurationError(f"Refusing to remove '{name}': not below {defaults.output_root}")
    raise UnknownTarget(name, registry.names())


__all__ = ["clean_intermediates", "clean_platform"]
