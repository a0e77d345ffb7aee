from __future__ import annotations

from pathlib import Path
import tempfile
import unittest
from unittest.mock import patch

from natives import environment
from natives.environment import EnvironmentResolver, resolve_environment, reset_environment_cache
from natives.errors import EnvironmentMissing


def _make_jdk(root: Path) -> Path:
    (root / "include").mkdir(parents=True)
    (root / "include" / "jni.h").write_text("/* jni */\n", encoding="utf-8")
    (root / "bin").mkdir()
    (root / "bin" / "javac").write_text("", encoding="utf-8")
    return root


class EnvironmentResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _resolver(self, env: dict[str, str], **kwargs: object) -> EnvironmentResolver:
        options: dict[str, object] = {
            "system": lambda: "Linux",
            "machine": lambda: "x86_64",
            "which": lambda name: None,
            "patterns": (),
        }
        options.update(kwargs)
        return EnvironmentResolver(env, **options)  # type: ignore[arg-type]

    def test_explicit_java_home_wins(self) -> None:
        jdk = _make_jdk(self.root / "jdk")
        resolved = self._resolver({"JAVA_HOME": str(jdk)}).resolve()
        self.assertEqual(resolved.devkit_root, jdk)
        self.assertEqual(resolved.host_os, "linux")
        self.assertEqual(resolved.host_arch, "x86_64")

    def test_javac_on_path_is_followed(self) -> None:
        jdk = _make_jdk(self.root / "jdk")
        resolver = self._resolver({}, which=lambda name: str(jdk / "bin" / "javac"))
        self.assertEqual(resolver.resolve().devkit_root, jdk.resolve())

    def test_missing_java_home_directory_falls_back_to_discovery(self) -> None:
        jdk = _make_jdk(self.root / "jvm" / "java-17")
        resolver = self._resolver(
            {"JAVA_HOME": str(self.root / "missing")},
            patterns=(str(self.root / "jvm" / "*"),),
        )
        self.assertEqual(resolver.resolve().devkit_root, jdk)

    def test_directories_without_headers_are_skipped(self) -> None:
        (self.root / "jvm" / "jre-only").mkdir(parents=True)
        jdk = _make_jdk(self.root / "jvm" / "zulu")
        resolver = self._resolver({}, patterns=(str(self.root / "jvm" / "*"),))
        self.assertEqual(resolver.resolve().devkit_root, jdk)

    def test_failure_raises_environment_missing(self) -> None:
        with self.assertRaises(EnvironmentMissing) as ctx:
            self._resolver({}).resolve()
        self.assertIn("JAVA_HOME", str(ctx.exception))

    def test_placeholders(self) -> None:
        jdk = _make_jdk(self.root / "jdk")
        resolved = self._resolver({"JAVA_HOME": str(jdk)}).resolve()
        self.assertEqual(
            resolved.placeholders(),
            {"devkit_root": str(jdk), "host_os": "linux", "host_arch": "x86_64"},
        )


class ResolveEnvironmentCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        reset_environment_cache()

    def tearDown(self) -> None:
        reset_environment_cache()

    def test_resolution_happens_once_per_process(self) -> None:
        calls: list[int] = []
        original = EnvironmentResolver.resolve

        def counting(resolver: EnvironmentResolver) -> environment.HostEnvironment:
            calls.append(1)
            return original(resolver)

        with tempfile.TemporaryDirectory() as tmp:
            jdk = _make_jdk(Path(tmp) / "jdk")
            with patch.dict(environment.os.environ, {"JAVA_HOME": str(jdk)}):
                with patch.object(EnvironmentResolver, "resolve", counting):
                    first = resolve_environment()
                    second = resolve_environment()
        self.assertIs(first, second)
        self.assertEqual(len(calls), 1)
        self.assertEqual(first.devkit_root, jdk)


if __name__ == "__main__":
    unittest.main()
