"""Shared helpers for loading configuration mappings from disk."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

import json
import tomllib

import yaml


ConfigLoader = Callable[[Any], Mapping[str, Any]]


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".yml": lambda stream: yaml.safe_load(stream),
}
"""Mapping of file suffixes to loader callables."""


class ConfigFileError(ValueError):
    """Raised when a configuration file cannot be decoded."""


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``.

    An empty YAML document decodes to an empty mapping. Decoder errors are
    re-raised as :class:`ConfigFileError` naming the offending file.
    """

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS)) or "<none>"
        raise ConfigFileError(
            f"Unsupported configuration file extension: {suffix}. Supported: {supported}"
        )

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    try:
        with path.open(mode, **kwargs) as handle:
            data = loader(handle)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigFileError(f"Failed to parse configuration file '{path}': {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigFileError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge two mapping objects."""

    result: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = merge_mappings(existing, value)
        else:
            result[key] = value
    return result


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Coerce ``value`` into a list of trimmed strings.

    A plain string is split on commas so ``"a,b"`` and ``["a", "b"]`` are
    equivalent.
    """

    if value is None:
        return []

    if isinstance(value, (str, bytes)):
        text = value.decode() if isinstance(value, bytes) else value
        return [part.strip() for part in text.split(",") if part.strip()]

    if isinstance(value, Sequence):
        items: List[str] = []
        for item in value:
            if not isinstance(item, (str, bytes)):
                label = f"{field_name} " if field_name else ""
                raise TypeError(f"{label}entries must be strings")
            text = str(item).strip()
            if text:
                items.append(text)
        return items

    label = f"{field_name} " if field_name else ""
    raise TypeError(f"{label}must be a string or sequence of strings")


__all__ = [
    "ConfigFileError",
    "ConfigLoader",
    "FILE_LOADERS",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
