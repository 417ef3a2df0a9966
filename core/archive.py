"""Archive creation and inspection utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Protocol, Sequence, runtime_checkable
import fnmatch
import os
import stat
import tarfile
import tempfile
import zipfile

import zstandard as zstd

_SUFFIX_FORMATS: list[tuple[str, str]] = [
    (".tar.zst", "zst"),
    (".tzst", "zst"),
    (".zip", "zip"),
    (".mcpb", "zip"),
]

_FORMAT_ALIASES: dict[str, str] = {
    "zst": "zst",
    "tar.zst": "zst",
    "tzst": "zst",
    "zip": "zip",
    "mcpb": "zip",
}

DEFAULT_EXCLUDES: tuple[str, ...] = (
    ".DS_Store",
    "._*",
    "__MACOSX",
    "__MACOSX/*",
    "Thumbs.db",
    "desktop.ini",
)
"""OS-generated metadata that never belongs in a package."""


class ArchiveError(RuntimeError):
    """Raised when an archive cannot be written or read."""


@runtime_checkable
class ArchiveConsole(Protocol):
    """Minimal console interface required by :class:`ArchiveManager`."""

    def info(self, message: str) -> None:
        ...

    def debug(self, message: str) -> None:
        ...


@dataclass(slots=True)
class ArchiveArtifact:
    """Description of a directory to package into an archive."""

    source_dir: Path
    label: str | None = None
    exclude: Sequence[str] = field(default=DEFAULT_EXCLUDES)


@dataclass(frozen=True, slots=True)
class ArchiveMember:
    """One file entry of an archive."""

    name: str
    size: int


def resolve_archive_format(target: Path, format_hint: str | None = None) -> str:
    """Return the canonical format name for *target* or *format_hint*."""

    if format_hint:
        normalized = format_hint.strip().lower().lstrip(".")
        if normalized in _FORMAT_ALIASES:
            return _FORMAT_ALIASES[normalized]
        raise ValueError(f"Unsupported archive format hint '{format_hint}'")

    filename = target.name.lower()
    for suffix, fmt in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
        if filename.endswith(suffix):
            return fmt

    raise ValueError(
        "Unable to determine archive format from target path. "
        "Provide an explicit format_hint or use a supported suffix."
    )


def is_excluded(relative: PurePosixPath, patterns: Sequence[str]) -> bool:
    """Return True when *relative* or any of its parents matches *patterns*."""

    text = relative.as_posix()
    for pattern in patterns:
        if fnmatch.fnmatchcase(relative.name, pattern) or fnmatch.fnmatchcase(text, pattern):
            return True
        for parent in relative.parents:
            if parent.name and fnmatch.fnmatchcase(parent.name, pattern):
                return True
    return False


def iter_files(source_dir: Path, exclude: Sequence[str] = DEFAULT_EXCLUDES) -> Iterator[tuple[Path, PurePosixPath]]:
    """Yield ``(path, relative)`` for every archivable file in sorted order."""

    root = Path(source_dir)
    for dirpath, dirnames, filenames in os.walk(root, topdown=True):
        current = Path(dirpath)
        relative_dir = PurePosixPath(current.relative_to(root).as_posix())
        dirnames[:] = sorted(
            name for name in dirnames if not is_excluded(relative_dir / name, exclude)
        )
        for filename in sorted(filenames):
            relative = relative_dir / filename if relative_dir != PurePosixPath(".") else PurePosixPath(filename)
            if is_excluded(relative, exclude):
                continue
            yield current / filename, relative


def _final_mode(target: Path) -> int:
    """Permission bits for a finished archive: the replaced file's, else 0o666 minus umask."""

    if target.exists():
        return stat.S_IMODE(target.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class ArchiveManager:
    """Create and inspect compressed archives of a directory tree.

    The archive root is the content of the source directory itself; there is
    no wrapping folder. Targets are replaced atomically: the new archive is
    written next to the target and renamed over it only once complete.
    """

    def __init__(self, console: ArchiveConsole) -> None:
        self._console = console

    @staticmethod
    def _zstd_thread_count(source_size: int) -> int:
        cpu_count = os.cpu_count() or 1
        if cpu_count <= 1:
            return 1

        size_mb = max(1, source_size) / (1024 * 1024)
        desired = 1
        if size_mb >= 32:
            desired = 2
        if size_mb >= 256:
            desired = 4
        if size_mb >= 1024:
            desired = 8

        max_by_work = max(1, source_size // (32 * 1024 * 1024))
        return max(1, min(desired, cpu_count, max_by_work))

    @classmethod
    def _zstd_compression_params(cls, source_size: int) -> zstd.ZstdCompressionParameters:
        size = max(1, source_size)
        window_log = max(10, min(27, (size - 1).bit_length()))
        threads = cls._zstd_thread_count(size)
        return zstd.ZstdCompressionParameters(
            compression_level=19,
            threads=threads,
            write_checksum=True,
            write_content_size=True,
            window_log=window_log,
        )

    def create_archive(
        self,
        *,
        artifact: ArchiveArtifact,
        target_path: Path | str,
        format_hint: str | None = None,
    ) -> Path:
        """Create an archive for *artifact* at *target_path*.

        Parameters
        ----------
        artifact:
            Directory to archive and the patterns to leave out.
        target_path:
            Exact path (including filename) of the archive. An existing file is
            replaced, never merged.
        format_hint:
            Optional explicit archive format such as ``"zip"`` or ``"zst"``.
            When omitted, the format is inferred from *target_path*'s suffix.
        """

        target = Path(target_path).expanduser()
        source_dir = Path(artifact.source_dir).expanduser()

        if not source_dir.is_dir():
            raise ArchiveError(f"Archive source directory '{source_dir}' does not exist")

        archive_format = resolve_archive_format(target, format_hint)
        target.parent.mkdir(parents=True, exist_ok=True)

        label = artifact.label or source_dir.name
        self._console.debug(f"Archiving {label} as {archive_format} to {target}")

        with tempfile.NamedTemporaryFile(dir=target.parent, prefix=f".{target.name}.", suffix=".partial", delete=False) as handle:
            partial = Path(handle.name)

        try:
            if archive_format == "zip":
                self._write_zip(partial, source_dir, artifact.exclude)
            elif archive_format == "zst":
                self._write_zst(partial, source_dir, artifact.exclude)
            else:
                raise ArchiveError(f"Unsupported archive format '{archive_format}'")
            os.chmod(partial, _final_mode(target))
            os.replace(partial, target)
        except (OSError, tarfile.TarError, zstd.ZstdError) as exc:
            raise ArchiveError(f"Failed to write archive '{target}': {exc}") from exc
        finally:
            partial.unlink(missing_ok=True)

        return target

    def _write_zip(self, target: Path, source_dir: Path, exclude: Sequence[str]) -> None:
        with zipfile.ZipFile(
            target,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=9,
            allowZip64=True,
            strict_timestamps=False,
        ) as archive:
            for file_path, relative in iter_files(source_dir, exclude):
                archive.write(file_path, relative.as_posix())

    def _write_zst(self, target: Path, source_dir: Path, exclude: Sequence[str]) -> None:
        files = list(iter_files(source_dir, exclude))
        total = sum(path.stat().st_size for path, _ in files)
        compressor = zstd.ZstdCompressor(compression_params=self._zstd_compression_params(total))
        with target.open("wb") as raw, compressor.stream_writer(raw, closefd=False) as writer:
            with tarfile.open(fileobj=writer, mode="w|", format=tarfile.PAX_FORMAT) as tar:
                for file_path, relative in files:
                    tar.add(file_path, arcname=relative.as_posix(), recursive=False)

    def list_archive(self, archive_path: Path | str, *, format_hint: str | None = None) -> List[ArchiveMember]:
        """Return every file entry of an archive with its uncompressed size."""

        archive = Path(archive_path).expanduser()
        if not archive.is_file():
            raise ArchiveError(f"Archive '{archive}' does not exist")

        archive_format = resolve_archive_format(archive, format_hint)
        try:
            if archive_format == "zip":
                with zipfile.ZipFile(archive, "r") as handle:
                    return [
                        ArchiveMember(name=info.filename, size=info.file_size)
                        for info in handle.infolist()
                        if not info.is_dir()
                    ]
            dctx = zstd.ZstdDecompressor()
            with archive.open("rb") as raw, dctx.stream_reader(raw) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    return [ArchiveMember(name=member.name, size=member.size) for member in tar if member.isfile()]
        except (zipfile.BadZipFile, tarfile.TarError, zstd.ZstdError, OSError, EOFError) as exc:
            raise ArchiveError(f"Failed to read archive '{archive}': {exc}") from exc


__all__ = [
    "ArchiveArtifact",
    "ArchiveConsole",
    "ArchiveError",
    "ArchiveManager",
    "ArchiveMember",
    "DEFAULT_EXCLUDES",
    "is_excluded",
    "iter_files",
    "resolve_archive_format",
]
