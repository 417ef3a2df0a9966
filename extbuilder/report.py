"""Read-back listing of a written package."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from core.archive import ArchiveError, ArchiveManager, ArchiveMember

from .console import Console
from .errors import PackagingVerificationError


def format_size(size: int) -> str:
    return f"{size / 1024:.2f} KB"


class Reporter:
    """List the contents of a written archive without modifying it."""

    def __init__(self, *, console: Console, archive_manager: ArchiveManager) -> None:
        self._console = console
        self._archives = archive_manager

    def verify(self, archive: Path) -> List[ArchiveMember]:
        try:
            return self._archives.list_archive(archive)
        except (ArchiveError, ValueError) as exc:
            raise PackagingVerificationError(f"Could not read back {archive}: {exc}") from exc

    @staticmethod
    def render(entries: Iterable[ArchiveMember]) -> List[str]:
        return [f"{entry.name} ({format_size(entry.size)})" for entry in entries]

    def report(self, archive: Path) -> List[ArchiveMember]:
        entries = self.verify(archive)
        self._console.step("Package contents:")
        for line in self.render(entries):
            self._console.info(line)
        total = sum(entry.size for entry in entries)
        self._console.info(f"{len(entries)} file(s), {format_size(total)} uncompressed")
        return entries


__all__ = ["Reporter", "format_size"]
