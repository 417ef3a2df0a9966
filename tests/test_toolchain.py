from __future__ import annotations

import io
import unittest

from core.command_runner import CommandResult, RecordingCommandRunner
from extbuilder.console import Console
from extbuilder.errors import ToolchainError
from extbuilder.toolchain import DotnetProber, ToolchainVersion, check_prerequisites


class ToolchainVersionTests(unittest.TestCase):
    def test_parse_forms(self) -> None:
        self.assertEqual(ToolchainVersion.parse("8.0"), ToolchainVersion(8, 0))
        self.assertEqual(ToolchainVersion.parse("9.0.304"), ToolchainVersion(9, 0))
        self.assertEqual(ToolchainVersion.parse("10.0.100-preview.7.25380.108"), ToolchainVersion(10, 0))
        self.assertEqual(ToolchainVersion.parse("net8.0"), ToolchainVersion(8, 0))
        with self.assertRaises(ValueError):
            ToolchainVersion.parse("latest")

    def test_from_moniker_is_exact(self) -> None:
        self.assertEqual(ToolchainVersion.from_moniker("net10.0"), ToolchainVersion(10, 0))
        self.assertIsNone(ToolchainVersion.from_moniker("net10.0-windows"))
        self.assertIsNone(ToolchainVersion.from_moniker("$(LatestTfm)"))

    def test_ordering_is_numeric(self) -> None:
        self.assertLess(ToolchainVersion(9, 0), ToolchainVersion(10, 0))
        self.assertGreater(ToolchainVersion(8, 1), ToolchainVersion(8, 0))

    def test_fallback_and_moniker(self) -> None:
        version = ToolchainVersion(9, 2)
        self.assertEqual(version.fallback(), ToolchainVersion(9, 0))
        self.assertEqual(version.moniker, "net9.2")
        self.assertEqual(str(version), "9.2")


class _MissingDotnetRunner(RecordingCommandRunner):
    def run(self, command, **kwargs) -> CommandResult:  # type: ignore[override]
        raise FileNotFoundError(command[0])


class DotnetProberTests(unittest.TestCase):
    def test_picks_highest_listed_sdk(self) -> None:
        runner = RecordingCommandRunner()
        runner.respond(
            "dotnet",
            stdout=(
                "8.0.404 [/usr/share/dotnet/sdk]\n"
                "10.0.100-rc.1.25451.107 [/usr/share/dotnet/sdk]\n"
                "9.0.304 [/usr/share/dotnet/sdk]\n"
            ),
        )
        self.assertEqual(DotnetProber(runner).probe(), ToolchainVersion(10, 0))
        self.assertEqual(runner.commands[0].command, ["dotnet", "--list-sdks"])

    def test_falls_back_to_version_flag(self) -> None:
        runner = RecordingCommandRunner()
        runner.respond("dotnet", returncode=1)
        runner.respond("dotnet", stdout="9.0.304\n")
        self.assertEqual(DotnetProber(runner).probe(), ToolchainVersion(9, 0))
        self.assertEqual(runner.commands[1].command, ["dotnet", "--version"])

    def test_unreadable_output_is_unknown(self) -> None:
        runner = RecordingCommandRunner()
        runner.respond("dotnet", stdout="garbage\n")
        runner.respond("dotnet", stdout="garbage\n")
        self.assertIsNone(DotnetProber(runner).probe())

    def test_missing_executable_is_unknown(self) -> None:
        self.assertIsNone(DotnetProber(_MissingDotnetRunner()).probe())


class CheckPrerequisitesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.output = io.StringIO()
        self.console = Console(level="info", color=False, stream=self.output)

    def test_missing_git_fails_only_when_cloning(self) -> None:
        which = lambda tool: None if tool == "git" else f"/usr/bin/{tool}"
        with self.assertRaises(ToolchainError) as ctx:
            check_prerequisites(console=self.console, installed=ToolchainVersion(9, 0), need_git=True, which=which)
        self.assertIn("git", str(ctx.exception))

        check_prerequisites(console=self.console, installed=ToolchainVersion(9, 0), need_git=False, which=which)

    def test_old_sdk_is_rejected(self) -> None:
        with self.assertRaises(ToolchainError):
            check_prerequisites(
                console=self.console,
                installed=ToolchainVersion(7, 0),
                need_git=False,
                which=lambda tool: "/usr/bin/dotnet",
            )

    def test_unknown_sdk_only_warns(self) -> None:
        check_prerequisites(console=self.console, installed=None, need_git=False, which=lambda tool: "/x")
        self.assertIn("[WARN]", self.output.getvalue())


if __name__ == "__main__":
    unittest.main()
