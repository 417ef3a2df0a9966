"""Per-platform ``dotnet publish`` invocations."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from core.command_runner import CommandError, CommandRunner

from .console import Console
from .errors import BuildError
from .platforms import PlatformTarget

PUBLISH_PROPERTIES: tuple[str, ...] = (
    "PublishSingleFile=true",
    "PublishTrimmed=true",
    "IncludeNativeLibrariesForSelfExtract=true",
)


@dataclass(frozen=True, slots=True)
class BuildOutput:
    target: PlatformTarget
    directory: Path


class PlatformBuilder:
    """Publish a self-contained, trimmed, single-file executable per platform."""

    def __init__(
        self,
        *,
        runner: CommandRunner,
        console: Console,
        configuration: str = "Release",
        timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._console = console
        self._configuration = configuration
        self._timeout = timeout

    def publish_command(self, project_file: Path, target: PlatformTarget, output_dir: Path) -> List[str]:
        command = [
            "dotnet",
            "publish",
            str(project_file),
            "-c",
            self._configuration,
            "-r",
            target.runtime_identifier,
            "--self-contained",
            "true",
        ]
        command.extend(f"-p:{prop}" for prop in PUBLISH_PROPERTIES)
        command.extend(["-o", str(output_dir)])
        return command

    def publish(self, project_file: Path, target: PlatformTarget, output_root: Path) -> BuildOutput:
        """Publish *target*; raise :class:`BuildError` on any failure."""

        rid = target.runtime_identifier
        output_dir = output_root / rid
        command = self.publish_command(project_file, target, output_dir)
        self._console.step(f"Building for {rid}...")
        self._console.info(f"Running: {self._runner.format_command(command)}")
        try:
            self._runner.run(command, stream=True, timeout=self._timeout)
        except CommandError as exc:
            raise BuildError(f"Build failed for {rid}: {exc}") from exc
        except OSError as exc:
            raise BuildError(f"Could not start dotnet for {rid}: {exc}") from exc
        self._console.success(f"Build completed for {rid}")
        return BuildOutput(target=target, directory=output_dir)

    def publish_all(
        self,
        project_file: Path,
        targets: Sequence[PlatformTarget],
        output_root: Path,
        *,
        jobs: int = 1,
    ) -> List[BuildOutput]:
        """Publish every target in order.

        Sequentially the first failure aborts the run. With ``jobs > 1`` all
        builds run to completion first and one :class:`BuildError` names every
        platform that failed.
        """

        if jobs <= 1 or len(targets) <= 1:
            return [self.publish(project_file, target, output_root) for target in targets]

        results: Dict[PlatformTarget, BuildOutput] = {}
        failures: Dict[PlatformTarget, BuildError] = {}
        with ThreadPoolExecutor(max_workers=min(jobs, len(targets))) as executor:
            futures = {
                executor.submit(self.publish, project_file, target, output_root): target
                for target in targets
            }
            for future in as_completed(futures):
                target = futures[future]
                try:
                    results[target] = future.result()
                except BuildError as exc:
                    failures[target] = exc

        if failures:
            for exc in failures.values():
                self._console.error(str(exc))
            failed = ", ".join(target.runtime_identifier for target in targets if target in failures)
            raise BuildError(f"Build failed for {len(failures)} platform(s): {failed}")
        return [results[target] for target in targets]


__all__ = ["BuildOutput", "PlatformBuilder", "PUBLISH_PROPERTIES"]
