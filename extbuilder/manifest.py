"""Reading and platform-specific rewriting of the extension manifest."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List
import copy
import json

from .errors import PackagingError
from .platforms import PlatformTarget

MANIFEST_NAME = "manifest.json"
SERVER_DIR = "server"
HOST_DIR_VARIABLE = "${__dirname}"


class ExtensionManifest:
    """A decoded ``manifest.json``.

    The object holds its own copy of the document; rewriting never touches the
    template it was loaded from.
    """

    def __init__(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)

    @classmethod
    def load(cls, path: Path) -> "ExtensionManifest":
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PackagingError(f"Manifest not found or unreadable: {path} ({exc})") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PackagingError(f"Manifest {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise PackagingError(f"Manifest {path} must contain a JSON object")
        return cls(data)

    @property
    def data(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    @property
    def version(self) -> str:
        value = self._data.get("version")
        if not isinstance(value, str) or not value.strip():
            raise PackagingError("Manifest does not declare a version string")
        return value.strip()

    @property
    def entry_point(self) -> str | None:
        return self._section("server").get("entry_point")

    @property
    def command(self) -> str | None:
        return self._section("server", "mcp_config").get("command")

    @property
    def args(self) -> List[str]:
        return list(self._section("server", "mcp_config").get("args") or [])

    @property
    def platforms(self) -> List[str]:
        return list(self._section("compatibility").get("platforms") or [])

    def _section(self, *keys: str) -> Dict[str, Any]:
        node: Any = self._data
        for key in keys:
            node = node.get(key) if isinstance(node, dict) else None
        return node if isinstance(node, dict) else {}

    def _ensure(self, *keys: str) -> Dict[str, Any]:
        node = self._data
        for key in keys:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        return node

    def for_platform(self, target: PlatformTarget, executable: str) -> "ExtensionManifest":
        """Return a copy launching ``server/<executable>`` on *target* only."""

        rewritten = ExtensionManifest(self._data)
        relative = f"{SERVER_DIR}/{executable}"
        rewritten._ensure("server")["entry_point"] = relative
        mcp_config = rewritten._ensure("server", "mcp_config")
        mcp_config["command"] = f"{HOST_DIR_VARIABLE}/{relative}"
        mcp_config.pop("platform_overrides", None)
        rewritten._ensure("compatibility")["platforms"] = [target.compatibility_tag]
        return rewritten

    def write(self, path: Path) -> None:
        path.write_text(json.dumps(self._data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


__all__ = ["ExtensionManifest", "HOST_DIR_VARIABLE", "MANIFEST_NAME", "SERVER_DIR"]
