"""End-to-end extension build: probe, acquire, negotiate, publish, package, report."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List
import shutil

from core.archive import ArchiveManager, ArchiveMember
from core.command_runner import CommandRunner, SubprocessCommandRunner

from .console import Console
from .packaging import PackageAssembler, PackageResult
from .publish import BuildOutput, PlatformBuilder
from .report import Reporter
from .settings import BuildSettings
from .source import SourceProvider, SourceTree
from .toolchain import DotnetProber, check_prerequisites
from .versioning import Negotiation, VersionNegotiator
from .workspace import WorkDirectory


@dataclass(slots=True)
class PipelineResult:
    source: SourceTree
    negotiation: Negotiation
    outputs: List[BuildOutput]
    package: PackageResult
    entries: List[ArchiveMember] = field(default_factory=list)

    @property
    def archive(self) -> Path:
        return self.package.archive


class ExtensionPipeline:
    """Run every stage in order inside one scoped work directory.

    Stages are synchronous; an exception from any stage ends the run and the
    work directory is removed on the way out.
    """

    def __init__(
        self,
        settings: BuildSettings,
        *,
        console: Console,
        runner: CommandRunner | None = None,
        which: Callable[[str], str | None] | None = None,
        work_parent: Path | None = None,
    ) -> None:
        self._settings = settings
        self._console = console
        self._runner = runner or SubprocessCommandRunner()
        self._which = which or shutil.which
        self._work_parent = work_parent
        self._archives = ArchiveManager(console)

    def run(self) -> PipelineResult:
        settings = self._settings
        console = self._console

        console.step("Checking prerequisites...")
        installed = DotnetProber(self._runner).probe()
        check_prerequisites(
            console=console,
            installed=installed,
            need_git=not settings.skip_clone,
            which=self._which,
        )

        with WorkDirectory(parent=self._work_parent) as work:
            console.info(f"Working directory: {work.path}")

            source = SourceProvider(
                runner=self._runner,
                console=console,
                url=settings.source.url,
                project=settings.source.project,
                skip_clone=settings.skip_clone,
                repo_path=settings.repo_path,
                clone_timeout=settings.source.clone_timeout,
            ).acquire(work)

            negotiation = VersionNegotiator(
                console=console,
                override=settings.dotnet_version,
                unattended=settings.unattended,
                on_mismatch=settings.build.on_mismatch,
            ).negotiate(source, installed)

            outputs = PlatformBuilder(
                runner=self._runner,
                console=console,
                configuration=settings.build.configuration,
                timeout=settings.build.publish_timeout,
            ).publish_all(
                source.project_file,
                settings.build.platforms,
                work.publish_dir,
                jobs=settings.build.jobs,
            )

            package = PackageAssembler(
                console=console,
                archive_manager=self._archives,
                assets_dir=settings.package.assets_dir,
                package_name=settings.package.name,
                server_name=settings.build.server_name,
                mode=settings.package.mode,
                archive_format=settings.package.format,
            ).assemble(
                build_root=work.publish_dir,
                bundle_dir=work.bundle_dir,
                output_dir=settings.output_dir,
                platforms=settings.build.platforms,
            )

        entries = Reporter(console=console, archive_manager=self._archives).report(package.archive)
        return PipelineResult(
            source=source,
            negotiation=negotiation,
            outputs=outputs,
            package=package,
            entries=entries,
        )


__all__ = ["ExtensionPipeline", "PipelineResult"]
