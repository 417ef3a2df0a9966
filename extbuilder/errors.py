"""Failure taxonomy of the extension build pipeline.

Every error carries the name of the pipeline stage that raised it so the CLI
can report where a build stopped.
"""
from __future__ import annotations


class ExtensionBuildError(RuntimeError):
    """Base class for pipeline failures."""

    stage = "pipeline"

    def __str__(self) -> str:
        return f"[{self.stage}] {super().__str__()}"


class ConfigurationError(ExtensionBuildError):
    """Bad or missing required input."""

    stage = "configuration"


class ToolchainError(ExtensionBuildError):
    """A required tool is absent, too old, or incompatible with the source."""

    stage = "toolchain"


class AcquisitionError(ExtensionBuildError):
    """The source tree could not be obtained."""

    stage = "source"


class BuildError(ExtensionBuildError):
    """Compiling or publishing a platform failed."""

    stage = "build"


class PackagingError(ExtensionBuildError):
    """The manifest could not be read or the archive could not be written."""

    stage = "package"


class PackagingVerificationError(ExtensionBuildError):
    """The written archive could not be read back."""

    stage = "verify"


class BuildCancelled(Exception):
    """The operator declined to continue. Not a failure."""


__all__ = [
    "AcquisitionError",
    "BuildCancelled",
    "BuildError",
    "ConfigurationError",
    "ExtensionBuildError",
    "PackagingError",
    "PackagingVerificationError",
    "ToolchainError",
]
