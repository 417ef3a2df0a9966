"""Assembly of the extension bundle and its archive."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Sequence
import os
import shutil
import stat

from core.archive import ArchiveArtifact, ArchiveError, ArchiveManager

from .console import Console
from .errors import PackagingError
from .manifest import MANIFEST_NAME, SERVER_DIR, ExtensionManifest
from .platforms import DEFAULT_SERVER_NAME, PlatformTarget

OPTIONAL_ASSETS: tuple[str, ...] = ("icon.png", "README.md")

ARCHIVE_SUFFIXES = {
    "zip": ".mcpb",
    "zst": ".tar.zst",
}


class PackagingMode(str, Enum):
    """How built platforms map onto the bundle and its manifest.

    ``multi-platform`` ships every built executable under a platform-qualified
    name and leaves the manifest untouched. ``single-primary`` ships only the
    first requested platform and rewrites the manifest to launch it.
    """

    MULTI_PLATFORM = "multi-platform"
    SINGLE_PRIMARY = "single-primary"


@dataclass(frozen=True, slots=True)
class StagedExecutable:
    target: PlatformTarget
    source: Path
    destination: Path


@dataclass(slots=True)
class PackageResult:
    archive: Path
    version: str
    mode: PackagingMode
    staged: List[StagedExecutable] = field(default_factory=list)
    skipped: List[PlatformTarget] = field(default_factory=list)
    primary: PlatformTarget | None = None


class PackageAssembler:
    def __init__(
        self,
        *,
        console: Console,
        archive_manager: ArchiveManager,
        assets_dir: Path,
        package_name: str = "fabric-mcp-server",
        server_name: str = DEFAULT_SERVER_NAME,
        mode: PackagingMode = PackagingMode.MULTI_PLATFORM,
        archive_format: str = "zip",
    ) -> None:
        if archive_format not in ARCHIVE_SUFFIXES:
            raise ValueError(f"Unsupported archive format '{archive_format}'")
        self._console = console
        self._archives = archive_manager
        self._assets_dir = assets_dir
        self._package_name = package_name
        self._server_name = server_name
        self._mode = mode
        self._format = archive_format

    @property
    def mode(self) -> PackagingMode:
        return self._mode

    def archive_name(self, version: str, primary: PlatformTarget | None = None) -> str:
        stem = f"{self._package_name}-{version}"
        if self._mode is PackagingMode.SINGLE_PRIMARY:
            if primary is None:
                raise ValueError("single-primary archives need a primary platform")
            stem = f"{stem}-{primary.runtime_identifier}"
        return stem + ARCHIVE_SUFFIXES[self._format]

    def assemble(
        self,
        *,
        build_root: Path,
        bundle_dir: Path,
        output_dir: Path,
        platforms: Sequence[PlatformTarget],
    ) -> PackageResult:
        if not platforms:
            raise PackagingError("No platforms were requested")

        self._console.step("Creating extension package...")
        manifest = self._stage_static(bundle_dir)
        version = manifest.version
        server_dir = bundle_dir / SERVER_DIR
        server_dir.mkdir(parents=True, exist_ok=True)

        result = PackageResult(archive=output_dir, version=version, mode=self._mode)
        if self._mode is PackagingMode.SINGLE_PRIMARY:
            primary = platforms[0]
            result.primary = primary
            staged = self._stage_executable(build_root, primary, server_dir, primary.canonical_name(self._server_name))
            if staged is None:
                raise PackagingError(f"Build output for primary platform {primary.runtime_identifier} is missing")
            result.staged.append(staged)
            for other in platforms[1:]:
                self._console.info(f"{other.runtime_identifier} is not the primary platform; not included in this package")
            manifest.for_platform(primary, staged.destination.name).write(bundle_dir / MANIFEST_NAME)
        else:
            for target in platforms:
                staged = self._stage_executable(build_root, target, server_dir, target.qualified_name(self._server_name))
                if staged is None:
                    result.skipped.append(target)
                else:
                    result.staged.append(staged)
            if not result.staged:
                raise PackagingError("No platform executables were staged; nothing to package")
            bundled = {f"{SERVER_DIR}/{staged.destination.name}" for staged in result.staged}
            if manifest.entry_point and manifest.entry_point not in bundled:
                self._console.warning(f"Manifest entry point {manifest.entry_point} is not in the package")

        result.archive = self._write_archive(bundle_dir, output_dir / self.archive_name(version, result.primary))
        return result

    def _stage_static(self, bundle_dir: Path) -> ExtensionManifest:
        if bundle_dir.exists():
            shutil.rmtree(bundle_dir)
        bundle_dir.mkdir(parents=True)

        template = self._assets_dir / MANIFEST_NAME
        manifest = ExtensionManifest.load(template)
        try:
            shutil.copyfile(template, bundle_dir / MANIFEST_NAME)
            for name in OPTIONAL_ASSETS:
                asset = self._assets_dir / name
                if asset.is_file():
                    shutil.copyfile(asset, bundle_dir / name)
                    self._console.debug(f"Staged {name}")
        except OSError as exc:
            raise PackagingError(f"Failed to stage extension assets: {exc}") from exc
        return manifest

    def _stage_executable(
        self,
        build_root: Path,
        target: PlatformTarget,
        server_dir: Path,
        destination_name: str,
    ) -> StagedExecutable | None:
        rid = target.runtime_identifier
        platform_dir = build_root / rid
        if not platform_dir.is_dir():
            self._console.warning(f"Build output not found for {rid}, skipping...")
            return None

        source = platform_dir / target.executable_name(self._server_name)
        if not source.is_file():
            self._console.warning(f"Executable not found at {source}, skipping...")
            return None

        destination = server_dir / destination_name
        try:
            shutil.copyfile(source, destination)
            if not target.is_windows:
                mode = destination.stat().st_mode
                os.chmod(destination, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as exc:
            raise PackagingError(f"Failed to stage {rid} executable: {exc}") from exc

        self._console.info(f"Copied {rid} executable to {destination_name}")
        return StagedExecutable(target=target, source=source, destination=destination)

    def _write_archive(self, bundle_dir: Path, archive_path: Path) -> Path:
        if archive_path.exists():
            self._console.info(f"Replacing existing archive: {archive_path}")
        self._console.info(f"Creating archive: {archive_path}")
        try:
            created = self._archives.create_archive(
                artifact=ArchiveArtifact(source_dir=bundle_dir, label="extension bundle"),
                target_path=archive_path,
                format_hint=self._format,
            )
        except (ArchiveError, ValueError) as exc:
            raise PackagingError(str(exc)) from exc
        self._console.success(f"Created package: {created}")
        return created


__all__ = ["ARCHIVE_SUFFIXES", "PackageAssembler", "PackageResult", "PackagingMode", "StagedExecutable"]
