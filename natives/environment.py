"""Host and development-kit discovery."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterable, List, Mapping
import glob
import logging
import os
import platform
import shutil
import subprocess

from .errors import EnvironmentMissing

log = logging.getLogger(__name__)

DEVKIT_VARIABLE = "JAVA_HOME"

_STANDARD_PATTERNS = (
    "/usr/lib/jvm/default-java",
    "/usr/lib/jvm/*",
    "/usr/local/openjdk*",
    "/usr/java/*",
    "/Library/Java/JavaVirtualMachines/*/Contents/Home",
    "C:/Program Files/Java/*",
    "C:/Program Files/Eclipse Adoptium/*",
)


@dataclass(frozen=True, slots=True)
class HostEnvironment:
    devkit_root: Path
    host_os: str
    host_arch: str

    def placeholders(self) -> dict[str, str]:
        return {
            "devkit_root": str(self.devkit_root),
            "host_os": self.host_os,
            "host_arch": self.host_arch,
        }


def _looks_like_devkit(path: Path) -> bool:
    return (path / "include" / "jni.h").is_file()


class EnvironmentResolver:
    """Locates the JDK used for the JNI headers.

    Lookup order: the ``JAVA_HOME`` variable, ``/usr/libexec/java_home`` on
    macOS, the ``javac`` found on ``PATH`` and finally a set of standard
    installation directories.
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        *,
        system: Callable[[], str] = platform.system,
        machine: Callable[[], str] = platform.machine,
        which: Callable[[str], str | None] = shutil.which,
        patterns: Iterable[str] = _STANDARD_PATTERNS,
    ) -> None:
        self._env = dict(env) if env is not None else dict(os.environ)
        self._system = system
        self._machine = machine
        self._which = which
        self._patterns = tuple(patterns)

    def host_os(self) -> str:
        return self._system().lower()

    def resolve(self) -> HostEnvironment:
        devkit_root = self._locate_devkit()
        environment = HostEnvironment(
            devkit_root=devkit_root,
            host_os=self.host_os(),
            host_arch=self._machine(),
        )
        log.debug("Resolved host environment: %s", environment)
        return environment

    def _locate_devkit(self) -> Path:
        explicit = self._env.get(DEVKIT_VARIABLE, "").strip()
        if explicit:
            path = Path(explicit).expanduser()
            if path.is_dir():
                return path
            log.warning("%s points to a missing directory: %s", DEVKIT_VARIABLE, path)

        for candidate in self._discovery_candidates():
            if _looks_like_devkit(candidate):
                log.info("Discovered %s at %s", DEVKIT_VARIABLE, candidate)
                return candidate

        raise EnvironmentMissing(
            "Could not locate a Java development kit",
            hint=f"Set {DEVKIT_VARIABLE} to the root of a JDK installation",
        )

    def _discovery_candidates(self) -> List[Path]:
        candidates: List[Path] = []
        if self.host_os() == "darwin":
            java_home = self._macos_java_home()
            if java_home is not None:
                candidates.append(java_home)

        javac = self._which("javac")
        if javac:
            # <root>/bin/javac once symlinks such as /etc/alternatives are followed
            candidates.append(Path(javac).resolve().parent.parent)

        for pattern in self._patterns:
            for match in sorted(glob.glob(pattern)):
                candidates.append(Path(match))
        return candidates

    @staticmethod
    def _macos_java_home() -> Path | None:
        tool = Path("/usr/libexec/java_home")
        if not tool.exists():
            return None
        try:
            process = subprocess.run([str(tool)], capture_output=True, text=True, check=False)
        except OSError:
            return None
        output = process.stdout.strip()
        if process.returncode != 0 or not output:
            return None
        return Path(output)


@lru_cache(maxsize=None)
def _cached_environment() -> HostEnvironment:
    return EnvironmentResolver().resolve()


def resolve_environment() -> HostEnvironment:
    """Resolve the host environment once per process."""

    return _cached_environment()


def reset_environment_cache() -> None:
    _cached_environment.cache_clear()


__all__ = [
    "DEVKIT_VARIABLE",
    "EnvironmentResolver",
    "HostEnvironment",
    "reset_environment_cache",
    "resolve_environment",
]
