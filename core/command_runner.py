"""Utilities for executing external tools with bounded run time."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Sequence
import os
import shlex
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False
    timed_out: bool = False


class CommandError(RuntimeError):
    """Raised when a command fails or exceeds its timeout."""

    def __init__(self, result: CommandResult, *, timeout: float | None = None):
        rendered = " ".join(map(shlex.quote, result.command))
        if result.timed_out:
            message = f"Command timed out after {timeout:g}s: {rendered}" if timeout else f"Command timed out: {rendered}"
        else:
            message = f"Command failed with exit code {result.returncode}: {rendered}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        elif result.stdout or result.stderr:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        stream: bool = False,
        timeout: float | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`.

    When *timeout* expires the child is killed and the result is flagged with
    ``timed_out``; with ``check=True`` that raises :class:`CommandError`.
    """

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _finalize(self, result: CommandResult, *, check: bool, timeout: float | None) -> CommandResult:
        if check and (result.timed_out or result.returncode != 0):
            raise CommandError(result, timeout=timeout)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        stream: bool = False,
        timeout: float | None = None,
    ) -> CommandResult:
        merged_env = self._merge_environment(env)
        try:
            process = subprocess.run(
                command,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                capture_output=not stream,
                text=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(
                command=command,
                returncode=-1,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                streamed=stream,
                timed_out=True,
            )
            return self._finalize(result, check=check, timeout=timeout)

        if stream:
            result = CommandResult(command=command, returncode=process.returncode, stdout="", stderr="", streamed=True)
        else:
            result = CommandResult(
                command=command,
                returncode=process.returncode,
                stdout=process.stdout,
                stderr=process.stderr,
            )
        return self._finalize(result, check=check, timeout=timeout)


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    stream: bool
    timeout: float | None = None


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    Canned results can be queued per executable name with :meth:`respond`;
    anything without a canned result succeeds with empty output.
    """

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []
        self._responses: Dict[str, List[CommandResult]] = {}

    def respond(self, program: str, *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._responses.setdefault(program, []).append(
            CommandResult(command=[program], returncode=returncode, stdout=stdout, stderr=stderr)
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        stream: bool = False,
        timeout: float | None = None,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(
                command=list(command),
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
                stream=stream,
                timeout=timeout,
            )
        )
        queued = self._responses.get(command[0]) if command else None
        if queued:
            canned = queued.pop(0)
            result = CommandResult(
                command=command,
                returncode=canned.returncode,
                stdout=canned.stdout,
                stderr=canned.stderr,
                streamed=stream,
            )
        else:
            result = CommandResult(command=command, returncode=0, stdout="", stderr="", streamed=stream)
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def programs(self) -> List[str]:
        return [record.command[0] for record in self.commands if record.command]


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
]
