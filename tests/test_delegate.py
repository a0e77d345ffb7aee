from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from natives.command_runner import RecordingCommandRunner
from natives.composer import compose
from natives.delegate import NativeBuilder
from natives.errors import CompileError, LinkError
from natives.targets import TargetRegistry

from tests.fakes import HOST, FakeToolchainRunner, make_defaults, write_sources


class NativeBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.defaults = make_defaults(self.root)
        self.registry = TargetRegistry.with_builtins()
        write_sources(self.defaults.source_dir, self.defaults.objects)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _config(self, name: str):
        return compose(self.defaults, self.registry.lookup(name), HOST)

    def test_compiles_each_object_then_links_once(self) -> None:
        runner = FakeToolchainRunner()
        config = self._config("linux64")
        artifact = NativeBuilder(runner).build(config)

        commands = runner.commands_for("linux64")
        self.assertEqual(len(commands), 4)
        for command, obj in zip(commands[:3], config.objects):
            self.assertEqual(command[0], "cc")
            self.assertIn(str(self.defaults.source_dir / obj.replace(".o", ".c")), command)
            self.assertEqual(command[-1], str(self.root / "build" / "linux64" / obj))
        link = commands[-1]
        self.assertEqual(link[:3], ["cc", "-fPIC", "-shared"])
        self.assertEqual(link[link.index("-o") + 1], str(config.artifact_path))

        self.assertEqual(artifact.path, self.root / "resources/native/linux/x86_64/libNRJavaSerial.so")
        self.assertTrue(artifact.path.is_file())
        self.assertEqual(len(artifact.sha256), 64)
        self.assertEqual(len(artifact.objects), 3)

    def test_commands_run_from_source_directory(self) -> None:
        runner = FakeToolchainRunner()
        NativeBuilder(runner).build(self._config("linux64"))
        self.assertTrue(all(entry.cwd == str(self.defaults.source_dir) for entry in runner.commands))

    def test_rebuilding_is_byte_identical(self) -> None:
        builder = NativeBuilder(FakeToolchainRunner())
        first = builder.build(self._config("arm32v7"))
        first_bytes = first.path.read_bytes()
        second = builder.build(self._config("arm32v7"))
        self.assertEqual(first.sha256, second.sha256)
        self.assertEqual(first_bytes, second.path.read_bytes())

    def test_previous_artifact_is_replaced(self) -> None:
        config = self._config("linux64")
        config.artifact_path.parent.mkdir(parents=True)
        config.artifact_path.write_bytes(b"stale")
        NativeBuilder(FakeToolchainRunner()).build(config)
        self.assertNotEqual(config.artifact_path.read_bytes(), b"stale")

    def test_compile_failure_stops_and_names_object(self) -> None:
        def fails(note, command):
            return "fuserImp.c:1: error: boom" if any(part.endswith("fuserImp.c") for part in command) else None

        runner = FakeToolchainRunner(fails)
        with self.assertRaises(CompileError) as ctx:
            NativeBuilder(runner).build(self._config("linux64"))
        self.assertEqual(ctx.exception.target, "linux64")
        self.assertEqual(ctx.exception.object, "fuserImp.o")
        self.assertIn("boom", ctx.exception.diagnostic)
        # fixup.o compiled, fuserImp.o failed, nothing after
        self.assertEqual(len(runner.commands_for("linux64")), 2)
        self.assertFalse(self._config("linux64").artifact_path.exists())

    def test_link_failure_is_reported(self) -> None:
        def fails(note, command):
            return "undefined reference to `main'" if "-shared" in command else None

        with self.assertRaises(LinkError) as ctx:
            NativeBuilder(FakeToolchainRunner(fails)).build(self._config("linux64"))
        self.assertEqual(ctx.exception.target, "linux64")
        self.assertIn("undefined reference", str(ctx.exception))

    def test_dry_run_records_without_touching_filesystem(self) -> None:
        runner = RecordingCommandRunner()
        artifact = NativeBuilder(runner).build(self._config("windows64"))
        self.assertEqual(len(runner.commands), 6)
        self.assertEqual(artifact.sha256, "")
        self.assertFalse((self.root / "build").exists())
        self.assertFalse((self.root / "resources").exists())
        formatted = list(runner.iter_formatted())
        self.assertTrue(formatted[0].startswith("[dry-run] [windows64]"))
        self.assertIn("x86_64-w64-mingw32-gcc", formatted[-1])


if __name__ == "__main__":
    unittest.main()
