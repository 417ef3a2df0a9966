"""Scoped ownership of the temporary build directory."""
from __future__ import annotations

from pathlib import Path
from types import TracebackType
import shutil
import tempfile


class WorkDirectory:
    """A temporary directory owned by one pipeline run.

    Use as a context manager; the directory and everything below it is removed
    on exit whether the run succeeded or not.
    """

    def __init__(self, *, prefix: str = "fabric-mcp-build-", parent: Path | None = None) -> None:
        self._prefix = prefix
        self._parent = parent
        self._path: Path | None = None

    def __enter__(self) -> "WorkDirectory":
        self._path = Path(tempfile.mkdtemp(prefix=self._prefix, dir=str(self._parent) if self._parent else None))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self._path is not None:
            shutil.rmtree(self._path, ignore_errors=True)
            self._path = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Work directory is not active")
        return self._path

    @property
    def clone_dir(self) -> Path:
        return self.path / "mcp"

    @property
    def publish_dir(self) -> Path:
        return self.path / "publish"

    @property
    def bundle_dir(self) -> Path:
        return self.path / "extension"


__all__ = ["WorkDirectory"]
