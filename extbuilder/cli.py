"""Command line interface for the extension builder."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace, RawDescriptionHelpFormatter
from pathlib import Path
from typing import Iterable
import sys

from core.command_runner import CommandRunner

from .console import Console
from .errors import BuildCancelled, ConfigurationError, ExtensionBuildError
from .packaging import PackagingMode
from .pipeline import ExtensionPipeline, PipelineResult
from .platforms import ALL_PLATFORMS, parse_platforms
from .settings import BuildSettings, load_settings, resolve_config_path
from .toolchain import ToolchainVersion
from .versioning import MismatchPolicy

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

_EXAMPLES = """\
Examples:
    %(prog)s
    %(prog)s -o ~/Extensions -p osx-arm64
    %(prog)s --repo ~/mcp
    %(prog)s --mode single-primary -p win-x64 --force
"""


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    valid = ",".join(target.value for target in ALL_PLATFORMS)
    parser = ArgumentParser(
        prog="fabric-mcpb",
        description="Microsoft Fabric MCP Server - Desktop Extension Builder",
        epilog=_EXAMPLES,
        formatter_class=RawDescriptionHelpFormatter,
    )
    parser.add_argument("-o", "--output", type=Path, help="Output directory (default: current directory)")
    parser.add_argument("-p", "--platforms", help=f"Comma-separated platforms (default: all). Valid: {valid}")
    parser.add_argument("-s", "--skip-clone", action="store_true", help="Skip repository clone")
    parser.add_argument("-r", "--repo", type=Path, help="Path to existing repository (implies --skip-clone)")
    parser.add_argument(
        "--dotnet-version",
        metavar="MAJOR.MINOR",
        help="Target framework version to build with, bypassing SDK negotiation",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Retarget the project without asking when the installed SDK is older",
    )
    parser.add_argument(
        "--unattended",
        action="store_true",
        help="Never prompt; apply build.on_mismatch when the SDK is older (default: abort)",
    )
    parser.add_argument(
        "-m",
        "--mode",
        choices=[mode.value for mode in PackagingMode],
        help="Packaging mode (default: multi-platform)",
    )
    parser.add_argument("-j", "--jobs", type=int, help="Number of platforms to publish in parallel")
    parser.add_argument("-c", "--config", type=Path, help="Configuration file (TOML, JSON or YAML)")
    parser.add_argument("--assets", type=Path, help="Directory holding manifest.json, icon.png and README.md")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")
    parser.add_argument(
        "--log",
        "-l",
        choices=["none", "error", "info", "debug"],
        default=None,
        help="Set log level (default: info)",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    return parser.parse_args(list(argv))


def _make_console(args: Namespace) -> Console:
    level = args.log or ("debug" if args.verbose else "info")
    return Console(level=level, color=False if args.no_color else None)


def _apply_overrides(settings: BuildSettings, args: Namespace, *, interactive: bool) -> BuildSettings:
    if args.output is not None:
        settings.output_dir = args.output
    settings.output_dir = settings.output_dir.expanduser().resolve()
    if args.platforms is not None:
        settings.build.platforms = parse_platforms(args.platforms)
    settings.skip_clone = args.skip_clone or args.repo is not None
    settings.repo_path = args.repo
    if args.dotnet_version:
        try:
            settings.dotnet_version = ToolchainVersion.parse(args.dotnet_version)
        except ValueError as exc:
            raise ConfigurationError(f"--dotnet-version: {exc}") from exc
    if args.mode:
        settings.package.mode = PackagingMode(args.mode)
    if args.jobs is not None:
        if args.jobs < 1:
            raise ConfigurationError("--jobs must be at least 1")
        settings.build.jobs = args.jobs
    if args.assets is not None:
        settings.package.assets_dir = args.assets.expanduser()
    if args.force:
        settings.unattended = True
        settings.build.on_mismatch = MismatchPolicy.PATCH
    elif args.unattended or not interactive:
        settings.unattended = True
    return settings


def _print_summary(console: Console, result: PipelineResult) -> None:
    rule = "═" * 64
    console.plain(f"\n{rule}")
    console.plain("  BUILD SUCCESSFUL!")
    console.plain(rule)
    console.info("")
    console.info("Extension package created at:")
    console.highlight(f"  {result.archive}")
    console.info("")
    console.info("To install:")
    console.info("1. Open Claude Desktop")
    console.info("2. Go to Settings > Extensions")
    console.info("3. Click 'Install Extension...' and select the .mcpb file")


def main(
    argv: Iterable[str] | None = None,
    *,
    runner: CommandRunner | None = None,
    interactive: bool | None = None,
) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    console = _make_console(args)
    if interactive is None:
        interactive = sys.stdin.isatty()

    try:
        settings = load_settings(resolve_config_path(args.config))
        settings = _apply_overrides(settings, args, interactive=interactive)
    except ConfigurationError as exc:
        console.error(str(exc))
        return EXIT_USAGE

    console.banner("Microsoft Fabric MCP Server - Desktop Extension Builder")
    try:
        result = ExtensionPipeline(settings, console=console, runner=runner).run()
    except BuildCancelled as exc:
        console.warning(str(exc))
        return EXIT_OK
    except ConfigurationError as exc:
        console.error(str(exc))
        return EXIT_USAGE
    except ExtensionBuildError as exc:
        console.error(str(exc))
        return EXIT_FAILURE
    except KeyboardInterrupt:
        console.error("Interrupted")
        return 130

    _print_summary(console, result)
    return EXIT_OK


__all__ = ["main"]
