"""Build settings: built-in defaults, optional configuration file, CLI overrides."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping
import os

from core.config_loader import ConfigFileError, load_config_file, merge_mappings, normalize_string_list

from .errors import ConfigurationError
from .packaging import ARCHIVE_SUFFIXES, PackagingMode
from .platforms import ALL_PLATFORMS, DEFAULT_SERVER_NAME, PlatformTarget, parse_platforms
from .toolchain import ToolchainVersion
from .versioning import MismatchPolicy

CONFIG_ENV = "FABRIC_MCPB_CONFIG"
ASSETS_DIR = Path(__file__).resolve().parent / "assets"

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "source": {
        "url": "https://github.com/microsoft/mcp.git",
        "project": "servers/Fabric.Mcp.Server/src/Fabric.Mcp.Server.csproj",
        "clone_timeout": 600,
    },
    "build": {
        "server_name": DEFAULT_SERVER_NAME,
        "configuration": "Release",
        "platforms": [target.value for target in ALL_PLATFORMS],
        "publish_timeout": 1800,
        "jobs": 1,
        "on_mismatch": MismatchPolicy.ABORT.value,
    },
    "package": {
        "name": "fabric-mcp-server",
        "assets_dir": None,
        "mode": PackagingMode.MULTI_PLATFORM.value,
        "format": "zip",
    },
}


def _check_keys(section: str, data: Mapping[str, Any]) -> None:
    allowed = set(DEFAULTS[section])
    unknown = {str(key) for key in data.keys() if str(key) not in allowed}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigurationError(f"Section [{section}] contains unknown keys: {joined}")


def _positive_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive number of seconds")
    return float(value)


def _text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{name} must be a non-empty string")
    return value.strip()


def _choice(enum_type: type, value: Any, name: str) -> Any:
    try:
        return enum_type(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(member.value for member in enum_type)
        raise ConfigurationError(f"{name} must be one of: {valid}") from None


@dataclass(slots=True)
class SourceSettings:
    url: str
    project: str
    clone_timeout: float

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SourceSettings":
        _check_keys("source", data)
        return cls(
            url=_text(data["url"], "source.url"),
            project=_text(data["project"], "source.project"),
            clone_timeout=_positive_number(data["clone_timeout"], "source.clone_timeout"),
        )


@dataclass(slots=True)
class CompileSettings:
    server_name: str
    configuration: str
    platforms: List[PlatformTarget]
    publish_timeout: float
    jobs: int
    on_mismatch: MismatchPolicy

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CompileSettings":
        _check_keys("build", data)
        jobs = data["jobs"]
        if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1:
            raise ConfigurationError("build.jobs must be a positive integer")
        try:
            names = normalize_string_list(data["platforms"], field_name="build.platforms")
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
        return cls(
            server_name=_text(data["server_name"], "build.server_name"),
            configuration=_text(data["configuration"], "build.configuration"),
            platforms=parse_platforms(names),
            publish_timeout=_positive_number(data["publish_timeout"], "build.publish_timeout"),
            jobs=jobs,
            on_mismatch=_choice(MismatchPolicy, data["on_mismatch"], "build.on_mismatch"),
        )


@dataclass(slots=True)
class PackageSettings:
    name: str
    assets_dir: Path
    mode: PackagingMode
    format: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base_dir: Path | None) -> "PackageSettings":
        _check_keys("package", data)
        raw_assets = data.get("assets_dir")
        if raw_assets is None:
            assets_dir = ASSETS_DIR
        else:
            assets_dir = Path(_text(raw_assets, "package.assets_dir")).expanduser()
            if not assets_dir.is_absolute() and base_dir is not None:
                assets_dir = base_dir / assets_dir
        archive_format = _text(data["format"], "package.format").lower()
        if archive_format not in ARCHIVE_SUFFIXES:
            valid = ", ".join(sorted(ARCHIVE_SUFFIXES))
            raise ConfigurationError(f"package.format must be one of: {valid}")
        return cls(
            name=_text(data["name"], "package.name"),
            assets_dir=assets_dir,
            mode=_choice(PackagingMode, data["mode"], "package.mode"),
            format=archive_format,
        )


@dataclass(slots=True)
class BuildSettings:
    """Everything one pipeline run needs to know."""

    source: SourceSettings
    build: CompileSettings
    package: PackageSettings
    output_dir: Path = field(default_factory=Path.cwd)
    skip_clone: bool = False
    repo_path: Path | None = None
    dotnet_version: ToolchainVersion | None = None
    unattended: bool = False
    config_file: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base_dir: Path | None = None) -> "BuildSettings":
        unknown = {str(key) for key in data.keys() if str(key) not in DEFAULTS}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigurationError(f"Configuration contains unknown sections: {joined}")
        for name, section in data.items():
            if not isinstance(section, Mapping):
                raise ConfigurationError(f"Section [{name}] must be a table")
        merged = merge_mappings(DEFAULTS, data)
        return cls(
            source=SourceSettings.from_mapping(merged["source"]),
            build=CompileSettings.from_mapping(merged["build"]),
            package=PackageSettings.from_mapping(merged["package"], base_dir=base_dir),
        )


def resolve_config_path(cli_value: Path | None) -> Path | None:
    """Pick the configuration file: CLI flag, then ``$FABRIC_MCPB_CONFIG``."""

    if cli_value is not None:
        return cli_value
    env_value = os.environ.get(CONFIG_ENV)
    if env_value:
        return Path(env_value)
    return None


def load_settings(config_path: Path | None = None) -> BuildSettings:
    """Load settings from *config_path*, or the defaults when it is None."""

    if config_path is None:
        return BuildSettings.from_mapping({})

    path = config_path.expanduser()
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        data = load_config_file(path)
    except (ConfigFileError, OSError) as exc:
        raise ConfigurationError(str(exc)) from exc
    settings = BuildSettings.from_mapping(data, base_dir=path.resolve().parent)
    settings.config_file = path
    return settings


__all__ = [
    "ASSETS_DIR",
    "BuildSettings",
    "CONFIG_ENV",
    "CompileSettings",
    "DEFAULTS",
    "PackageSettings",
    "SourceSettings",
    "load_settings",
    "resolve_config_path",
]
