"""Supported publish targets and their naming rules."""
from __future__ import annotations

from enum import Enum
from typing import Iterable, List

from .errors import ConfigurationError

DEFAULT_SERVER_NAME = "Fabric.Mcp.Server"


class PlatformTarget(str, Enum):
    """An OS/architecture pair the server can be published for.

    The value is the .NET runtime identifier.
    """

    WIN_X64 = "win-x64"
    OSX_X64 = "osx-x64"
    OSX_ARM64 = "osx-arm64"

    @property
    def runtime_identifier(self) -> str:
        return self.value

    @property
    def is_windows(self) -> bool:
        return self.value.startswith("win-")

    @property
    def architecture(self) -> str:
        return self.value.split("-", 1)[1]

    @property
    def compatibility_tag(self) -> str:
        """Platform tag understood by the host's ``compatibility.platforms``."""
        return "win32" if self.is_windows else "darwin"

    def executable_name(self, server_name: str = DEFAULT_SERVER_NAME) -> str:
        """Name of the file ``dotnet publish`` produces."""
        return f"{server_name}.exe" if self.is_windows else server_name

    def qualified_name(self, server_name: str = DEFAULT_SERVER_NAME) -> str:
        """Bundle file name when several platforms share one ``server/`` directory."""
        if self.is_windows:
            return self.executable_name(server_name)
        return f"{server_name}-{self.compatibility_tag}-{self.architecture}"

    def canonical_name(self, server_name: str = DEFAULT_SERVER_NAME) -> str:
        """Bundle file name when this is the only platform in the bundle."""
        return self.executable_name(server_name)

    @classmethod
    def parse(cls, value: str) -> "PlatformTarget":
        text = value.strip().lower()
        for member in cls:
            if member.value == text:
                return member
        valid = ", ".join(member.value for member in cls)
        raise ConfigurationError(f"Unknown platform '{value}'. Valid: {valid}")


ALL_PLATFORMS: tuple[PlatformTarget, ...] = tuple(PlatformTarget)


def parse_platforms(values: str | Iterable[str]) -> List[PlatformTarget]:
    """Parse a comma-separated list (or iterable) of runtime identifiers.

    Order is preserved and duplicates are dropped, so the first entry stays
    the primary platform.
    """

    if isinstance(values, str):
        raw = values.split(",")
    else:
        raw = [part for value in values for part in str(value).split(",")]

    targets: List[PlatformTarget] = []
    for item in raw:
        if not item.strip():
            continue
        target = PlatformTarget.parse(item)
        if target not in targets:
            targets.append(target)

    if not targets:
        raise ConfigurationError("At least one platform must be requested")
    return targets


__all__ = ["ALL_PLATFORMS", "DEFAULT_SERVER_NAME", "PlatformTarget", "parse_platforms"]
