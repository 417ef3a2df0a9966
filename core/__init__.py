"""Shared core utilities for build orchestration and packaging."""

from .archive import ArchiveArtifact, ArchiveConsole, ArchiveError, ArchiveManager, ArchiveMember
from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
    SubprocessCommandRunner,
)
from .config_loader import ConfigFileError, FILE_LOADERS, load_config_file, merge_mappings, normalize_string_list

__all__ = [
    "ArchiveArtifact",
    "ArchiveConsole",
    "ArchiveError",
    "ArchiveManager",
    "ArchiveMember",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "ConfigFileError",
    "FILE_LOADERS",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
