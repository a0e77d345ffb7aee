"""Expansion of target groups into independent, optionally parallel leaf builds."""
from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Tuple
import logging
import os

from .composer import EffectiveConfiguration, GlobalDefaults, compose
from .delegate import BuildArtifact, NativeBuilder
from .environment import HostEnvironment
from .errors import GroupBuildError, NativesError, NoTargetSpecified
from .targets import TargetRegistry

log = logging.getLogger(__name__)


def default_jobs() -> int:
    return os.cpu_count() or 1


class GroupBuilder:
    """Builds leaf targets, each from its own freshly composed configuration."""

    def __init__(
        self,
        *,
        registry: TargetRegistry,
        defaults: GlobalDefaults,
        environment: HostEnvironment | Callable[[], HostEnvironment],
        builder: NativeBuilder,
        jobs: int | None = None,
        fail_fast: bool = False,
    ) -> None:
        self._registry = registry
        self._defaults = defaults
        self._environment = environment
        self._builder = builder
        self._jobs = max(1, jobs or default_jobs())
        self._fail_fast = fail_fast

    def _host(self) -> HostEnvironment:
        if isinstance(self._environment, HostEnvironment):
            return self._environment
        self._environment = self._environment()
        return self._environment

    def configuration_for(self, target: str) -> EffectiveConfiguration:
        return compose(self._defaults, self._registry.lookup(target), self._host())

    def build_leaf(self, target: str) -> BuildArtifact:
        return self._builder.build(self.configuration_for(target))

    def build_group(self, name: str) -> List[BuildArtifact]:
        return self.build_targets([name])

    def build_targets(self, names: Iterable[str]) -> List[BuildArtifact]:
        requested = list(names)
        if not requested:
            raise NoTargetSpecified(self._registry.names())

        leaves: List[str] = []
        for name in requested:
            for leaf in self._registry.resolve(name):
                if leaf not in leaves:
                    leaves.append(leaf)
        label = ", ".join(requested)
        # Resolve the host once, before any worker thread needs it.
        self._host()
        log.info("Building %d target(s) for %s with %d job(s)", len(leaves), label, min(self._jobs, len(leaves)))

        if self._jobs == 1 or len(leaves) == 1:
            results = self._run_sequential(leaves)
        else:
            results = self._run_parallel(leaves)

        artifacts = [results[leaf] for leaf in leaves if isinstance(results.get(leaf), BuildArtifact)]
        failures: List[Tuple[str, NativesError]] = [
            (leaf, results[leaf]) for leaf in leaves if isinstance(results.get(leaf), NativesError)
        ]
        if failures:
            if self._fail_fast:
                raise failures[0][1]
            raise GroupBuildError(label, failures, artifacts)
        return artifacts

    def _attempt(self, leaf: str) -> BuildArtifact | NativesError:
        try:
            return self.build_leaf(leaf)
        except NativesError as exc:
            log.error("Target %s failed: %s", leaf, exc.message)
            return exc

    def _run_sequential(self, leaves: List[str]) -> Dict[str, BuildArtifact | NativesError]:
        results: Dict[str, BuildArtifact | NativesError] = {}
        for leaf in leaves:
            outcome = self._attempt(leaf)
            results[leaf] = outcome
            if self._fail_fast and isinstance(outcome, NativesError):
                break
        return results

    def _run_parallel(self, leaves: List[str]) -> Dict[str, BuildArtifact | NativesError]:
        results: Dict[str, BuildArtifact | NativesError] = {}
        with ThreadPoolExecutor(max_workers=min(self._jobs, len(leaves))) as executor:
            futures = {executor.submit(self.build_leaf, leaf): leaf for leaf in leaves}
            pending = set(futures)
            while pending:
                done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                failed = False
                for future in done:
                    leaf = futures[future]
                    error = future.exception()
                    if error is None:
                        results[leaf] = future.result()
                    elif isinstance(error, NativesError):
                        log.error("Target %s failed: %s", leaf, error.message)
                        results[leaf] = error
                        failed = True
                    else:
                        raise error
                if failed and self._fail_fast:
                    for future in pending:
                        future.cancel()
                    break
        return results


__all__ = ["GroupBuilder", "default_jobs"]
