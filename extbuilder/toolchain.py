"""Detection of the installed .NET SDK and required command line tools."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional
import functools
import re
import shutil

from core.command_runner import CommandRunner

from .console import Console
from .errors import ToolchainError

_VERSION_PATTERN = re.compile(r"^\s*(\d+)\.(\d+)(?:\.\d+)?(?:[-+][0-9A-Za-z.-]+)?\s*$")
_MONIKER_PATTERN = re.compile(r"^net(\d+)\.(\d+)$")
_SDK_LINE_PATTERN = re.compile(r"^\s*(\d+\.\d+\.\d+\S*)\s+\[")


@functools.total_ordering
@dataclass(frozen=True, slots=True)
class ToolchainVersion:
    """A ``major.minor`` toolchain version."""

    major: int
    minor: int

    @classmethod
    def parse(cls, text: str) -> "ToolchainVersion":
        """Parse ``"8.0"``, ``"8.0.404"`` or a moniker such as ``"net8.0"``."""

        stripped = text.strip()
        match = _MONIKER_PATTERN.match(stripped) or _VERSION_PATTERN.match(stripped)
        if not match:
            raise ValueError(f"Not a toolchain version: '{text}'")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def from_moniker(cls, moniker: str) -> Optional["ToolchainVersion"]:
        """Return the version of an exact ``netX.Y`` moniker, else None."""

        match = _MONIKER_PATTERN.match(moniker.strip())
        if not match:
            return None
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def moniker(self) -> str:
        return f"net{self.major}.{self.minor}"

    def fallback(self) -> "ToolchainVersion":
        return ToolchainVersion(self.major, 0)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ToolchainVersion):
            return NotImplemented
        return (self.major, self.minor) < (other.major, other.minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


MINIMUM_SDK = ToolchainVersion(8, 0)


class DotnetProber:
    """Find the highest installed .NET SDK.

    Detection never raises: a missing ``dotnet`` or unreadable output yields
    ``None`` and negotiation continues without a baseline.
    """

    def __init__(self, runner: CommandRunner, *, executable: str = "dotnet", timeout: float = 60) -> None:
        self._runner = runner
        self._executable = executable
        self._timeout = timeout

    def probe(self) -> ToolchainVersion | None:
        versions = self._listed_sdks()
        if versions:
            return max(versions)
        return self._reported_version()

    def _listed_sdks(self) -> list[ToolchainVersion]:
        result = self._run("--list-sdks")
        if result is None:
            return []
        versions: list[ToolchainVersion] = []
        for line in result.splitlines():
            match = _SDK_LINE_PATTERN.match(line)
            if not match:
                continue
            try:
                versions.append(ToolchainVersion.parse(match.group(1)))
            except ValueError:
                continue
        return versions

    def _reported_version(self) -> ToolchainVersion | None:
        output = self._run("--version")
        if not output:
            return None
        try:
            return ToolchainVersion.parse(output.strip().splitlines()[0])
        except ValueError:
            return None

    def _run(self, flag: str) -> str | None:
        try:
            result = self._runner.run([self._executable, flag], check=False, timeout=self._timeout)
        except OSError:
            return None
        if result.returncode != 0 or result.timed_out:
            return None
        return result.stdout


def check_prerequisites(
    *,
    console: Console,
    installed: ToolchainVersion | None,
    need_git: bool,
    tools: Iterable[str] = ("dotnet",),
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    """Fail with :class:`ToolchainError` when a required tool is missing or too old."""

    required = list(tools)
    if need_git:
        required.append("git")
    for tool in required:
        if which(tool) is None:
            raise ToolchainError(f"Required tool '{tool}' was not found on PATH")

    if installed is None:
        console.warning(".NET SDK version could not be determined; skipping version checks")
        return
    if installed < MINIMUM_SDK:
        raise ToolchainError(f".NET SDK {MINIMUM_SDK} or later is required. Current version: {installed}")
    console.success(f".NET SDK {installed} found")


__all__ = ["DotnetProber", "MINIMUM_SDK", "ToolchainVersion", "check_prerequisites"]
