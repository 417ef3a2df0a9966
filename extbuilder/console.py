"""Leveled console output for the extension builder."""
from __future__ import annotations

import sys
from typing import Callable, TextIO

from core.archive import ArchiveConsole

RED = "\033[0;31m"
GREEN = "\033[0;32m"
CYAN = "\033[0;36m"
YELLOW = "\033[1;33m"
GRAY = "\033[0;90m"
MAGENTA = "\033[0;35m"
RESET = "\033[0m"


class Console(ArchiveConsole):
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    Default: 'info'. Warnings are shown from 'error' upwards.
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(
        self,
        level: str = "info",
        *,
        color: bool | None = None,
        stream: TextIO | None = None,
        prompt: Callable[[str], str] | None = None,
    ) -> None:
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'")
        self.level_name = level
        self.level = self.LEVELS[level]
        self._stream = stream
        self._color = color
        self._prompt = prompt or input

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stdout

    def _paint(self, color: str, text: str, stream: TextIO) -> str:
        enabled = self._color
        if enabled is None:
            enabled = hasattr(stream, "isatty") and stream.isatty()
        return f"{color}{text}{RESET}" if enabled else text

    def _emit(self, threshold: str, color: str, text: str, *, stream: TextIO | None = None) -> None:
        if self.level < self.LEVELS[threshold]:
            return
        target = stream or self.stream
        print(self._paint(color, text, target), file=target)

    def banner(self, title: str) -> None:
        width = max(62, len(title) + 6)
        self._emit("info", MAGENTA, "")
        self._emit("info", MAGENTA, "╔" + "═" * width + "╗")
        self._emit("info", MAGENTA, "║" + title.center(width) + "║")
        self._emit("info", MAGENTA, "╚" + "═" * width + "╝")

    def step(self, message: str) -> None:
        self._emit("info", CYAN, f"\n==> {message}")

    def success(self, message: str) -> None:
        self._emit("info", GREEN, f"[✓] {message}")

    def info(self, message: str) -> None:
        self._emit("info", GRAY, f"    {message}")

    def warning(self, message: str) -> None:
        self._emit("error", YELLOW, f"[WARN] {message}")

    def error(self, message: str) -> None:
        self._emit("error", RED, f"[ERROR] {message}", stream=sys.stderr if self._stream is None else self._stream)

    def debug(self, message: str) -> None:
        self._emit("debug", GRAY, f"[DEBUG] {message}")

    def highlight(self, message: str) -> None:
        self._emit("info", YELLOW, message)

    def plain(self, message: str) -> None:
        self._emit("info", GREEN, message)

    def confirm(self, question: str) -> bool:
        """Ask a yes/no question; anything but an explicit yes declines."""

        try:
            answer = self._prompt(f"{question} [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in {"y", "yes"}


__all__ = ["Console"]
