from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from types import SimpleNamespace
from unittest import mock
import io
import os
import tempfile
import textwrap
import unittest

from natives import cli
from natives.composer import DEFAULT_OBJECTS

from tests.fakes import HOST, FakeToolchainRunner, write_sources


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name).resolve()
        config_dir = self.workspace / "config"
        config_dir.mkdir()
        (config_dir / "config.toml").write_text(
            textwrap.dedent(
                """
                [global]
                source_dir = "src"
                output_root = "out"
                build_root = "build"
                jobs = 2
                """
            )
        )
        write_sources(self.workspace / "src", DEFAULT_OBJECTS)
        patcher = mock.patch.object(cli, "resolve_environment", return_value=HOST)
        patcher.start()
        self.addCleanup(patcher.stop)
        env_patcher = mock.patch.dict(os.environ, {}, clear=False)
        env_patcher.start()
        os.environ.pop(cli.CONFIG_DIR_VARIABLE, None)
        self.addCleanup(env_patcher.stop)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def invoke(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = cli.main(["--root", str(self.workspace), *argv])
        return code, stdout.getvalue(), stderr.getvalue()


class BuildCommandTests(CliTestCase):
    def test_build_without_target_lists_valid_names(self) -> None:
        code, _, stderr = self.invoke("build")
        self.assertEqual(code, cli.EXIT_USAGE)
        self.assertIn("You must specify a target platform", stderr)
        self.assertIn("linux64", stderr)
        self.assertIn("windows", stderr)
        cli.resolve_environment.assert_not_called()

    def test_unknown_target(self) -> None:
        code, _, stderr = self.invoke("build", "beos")
        self.assertEqual(code, cli.EXIT_USAGE)
        self.assertIn("Unknown target 'beos'", stderr)

    def test_build_dry_run_outputs_formatted_commands(self) -> None:
        args = SimpleNamespace(
            targets=["linux64"],
            jobs=None,
            fail_fast=False,
            dry_run=True,
            debug=False,
            config_dirs=[],
            verbose=False,
        )
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = cli._handle_build(args, self.workspace)
        output = buffer.getvalue()
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("[dry-run] [linux64]", output)
        self.assertIn("-I/opt/jdk/include/linux", output)
        self.assertIn("Would build", output)
        self.assertFalse((self.workspace / "out").exists())
        self.assertFalse((self.workspace / "build").exists())

    def test_build_produces_library(self) -> None:
        runner = FakeToolchainRunner()
        with mock.patch.object(cli, "_make_runner", return_value=runner):
            code, stdout, _ = self.invoke("build", "linux64")
        artifact = self.workspace / "out" / "linux" / "x86_64" / "libNRJavaSerial.so"
        self.assertEqual(code, cli.EXIT_OK)
        self.assertTrue(artifact.is_file())
        self.assertIn(f"Built {artifact}", stdout)

    def test_partial_failure_reports_every_target(self) -> None:
        runner = FakeToolchainRunner(fails=lambda note, command: "cc1: bad arch" if note == "linux32" else None)
        with mock.patch.object(cli, "_make_runner", return_value=runner):
            code, stdout, stderr = self.invoke("build", "linux32", "linux64")
        self.assertEqual(code, cli.EXIT_FAILURE)
        self.assertIn("libNRJavaSerial.so", stdout)
        self.assertIn("Build failed for 1 target(s)", stderr)
        self.assertIn("[linux32]", stderr)
        self.assertIn("cc1: bad arch", stderr)
        self.assertFalse((self.workspace / "out" / "linux" / "x86_32").exists())

    def test_fail_fast_reports_single_error(self) -> None:
        runner = FakeToolchainRunner(fails=lambda note, command: "undefined reference" if "-shared" in command else None)
        with mock.patch.object(cli, "_make_runner", return_value=runner):
            code, _, stderr = self.invoke("build", "--fail-fast", "-j", "1", "linux64")
        self.assertEqual(code, cli.EXIT_FAILURE)
        self.assertIn("Linking failed for target 'linux64'", stderr)
        self.assertIn("undefined reference", stderr)

    def test_extra_config_directory_from_environment(self) -> None:
        extra = self.workspace / "extra"
        extra.mkdir()
        (extra / "targets.toml").write_text(
            textwrap.dedent(
                """
                [targets.riscv64]
                platform = "linux/RISCV_64"
                compiler = "riscv64-linux-gnu-gcc"
                """
            )
        )
        os.environ[cli.CONFIG_DIR_VARIABLE] = str(extra)
        code, stdout, _ = self.invoke("build", "-n", "riscv64")
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("riscv64-linux-gnu-gcc", stdout)
        self.assertIn(str(Path("out") / "linux" / "RISCV_64"), stdout)


class AuxiliaryCommandTests(CliTestCase):
    def test_list_shows_targets_and_groups(self) -> None:
        code, stdout, _ = self.invoke("list")
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("Target", stdout.splitlines()[0])
        self.assertIn("windows64", stdout)
        self.assertIn("Groups:", stdout)
        self.assertIn("  arm: arm32v5", stdout)

    def test_validate_builtin_catalog(self) -> None:
        code, stdout, _ = self.invoke("validate")
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("Validation successful", stdout)

    def test_crosstools_dry_run(self) -> None:
        code, stdout, _ = self.invoke("crosstools", "--dry-run")
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("[dry-run] [crosstools] apt install --install-recommends", stdout)
        self.assertIn("gcc-mingw-w64", stdout)
        self.assertEqual(stdout.count("gcc-mingw-w64"), 1)

    def test_clean_without_platform_explains_itself(self) -> None:
        (self.workspace / "build" / "linux64").mkdir(parents=True)
        code, stdout, stderr = self.invoke("clean")
        self.assertEqual(code, cli.EXIT_OK)
        self.assertIn("Removed", stdout)
        self.assertIn("natives clean <target|group|platform>", stderr)
        self.assertFalse((self.workspace / "build").exists())

    def test_clean_after_build(self) -> None:
        runner = FakeToolchainRunner()
        with mock.patch.object(cli, "_make_runner", return_value=runner):
            self.invoke("build", "linux64")
        code, _, _ = self.invoke("clean", "linux64")
        self.assertEqual(code, cli.EXIT_OK)
        self.assertFalse((self.workspace / "out" / "linux" / "x86_64" / "libNRJavaSerial.so").exists())
        self.assertFalse((self.workspace / "build").exists())


if __name__ == "__main__":
    unittest.main()
