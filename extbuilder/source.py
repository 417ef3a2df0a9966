"""Acquisition of the server source tree."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import shutil

import pygit2

from core.command_runner import CommandError, CommandRunner

from .console import Console
from .errors import AcquisitionError, ConfigurationError
from .workspace import WorkDirectory


@dataclass(frozen=True, slots=True)
class SourceTree:
    root: Path
    project_file: Path
    revision: str | None = None


def head_revision(path: Path) -> str | None:
    """Return the HEAD commit of the repository at *path*, or None."""

    try:
        repo = pygit2.Repository(str(path))
        if repo.head_is_unborn:
            return None
        return str(repo.head.target)
    except (pygit2.GitError, KeyError):
        return None


class SourceProvider:
    """Clone the server repository or reuse an existing checkout."""

    def __init__(
        self,
        *,
        runner: CommandRunner,
        console: Console,
        url: str,
        project: str,
        skip_clone: bool = False,
        repo_path: Path | None = None,
        clone_timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._console = console
        self._url = url
        self._project = project
        self._skip_clone = skip_clone
        self._repo_path = repo_path
        self._clone_timeout = clone_timeout

    def acquire(self, work: WorkDirectory) -> SourceTree:
        root = self._reuse() if self._skip_clone else self._clone(work.clone_dir)

        project_file = root / self._project
        if not project_file.is_file():
            raise ConfigurationError(f"Project file not found at: {project_file}")

        revision = head_revision(root)
        if revision:
            self._console.info(f"Source revision: {revision[:12]}")
        return SourceTree(root=root, project_file=project_file, revision=revision)

    def _reuse(self) -> Path:
        if self._repo_path is None or not str(self._repo_path).strip():
            raise ConfigurationError("When using --skip-clone, you must specify --repo")
        path = Path(self._repo_path).expanduser()
        if not path.is_dir():
            raise ConfigurationError(f"Repository path does not exist: {path}")
        resolved = path.resolve()
        self._console.success(f"Using existing repository at {resolved}")
        return resolved

    def _clone(self, clone_path: Path) -> Path:
        self._console.step("Cloning source repository...")
        if clone_path.exists():
            self._console.info("Removing existing clone...")
            shutil.rmtree(clone_path)

        try:
            self._runner.run(
                ["git", "clone", "--depth", "1", self._url, str(clone_path)],
                stream=True,
                timeout=self._clone_timeout,
            )
        except CommandError as exc:
            raise AcquisitionError(f"Failed to clone {self._url}: {exc}") from exc
        except OSError as exc:
            raise AcquisitionError(f"Failed to run git: {exc}") from exc

        if not clone_path.is_dir():
            raise AcquisitionError(f"Clone of {self._url} did not produce {clone_path}")
        self._console.success("Repository cloned successfully")
        return clone_path


__all__ = ["SourceProvider", "SourceTree", "head_revision"]
