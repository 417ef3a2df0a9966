"""Reconcile the project's target framework with the installed SDK.

A source tree may target a newer .NET than the machine has installed. The
negotiator computes the framework the build will actually use and, when it
differs from the declared one, retargets the MSBuild files in place.

Declarations are located through the XML parser: only the text of elements
named ``TargetFramework`` or ``TargetFrameworks`` is considered, and only
tokens exactly equal to the old moniker are replaced. Every other byte of the
file is written back unchanged. Values such as
``net10.0-windows`` or ``$(LatestTfm)`` are never touched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Tuple
from xml.parsers import expat
import os
import re
import xml.etree.ElementTree as ET

from .console import Console
from .errors import BuildCancelled, ToolchainError
from .source import SourceTree
from .toolchain import ToolchainVersion

MSBUILD_SUFFIXES = frozenset({".csproj", ".fsproj", ".vbproj", ".props", ".targets"})
SKIPPED_DIRECTORIES = frozenset({".git", "bin", "obj", "node_modules"})
FRAMEWORK_ELEMENTS = frozenset({"TargetFramework", "TargetFrameworks"})
DIRECTORY_PROPS = "Directory.Build.props"


class MismatchPolicy(str, Enum):
    """What an unattended run does when the SDK is older than the project."""

    ABORT = "abort"
    PATCH = "patch"


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def _text_spans(raw: bytes) -> List[Tuple[int, int]]:
    """Byte ranges holding the leading text of every framework element in *raw*."""

    parser = expat.ParserCreate()
    spans: List[Tuple[int, int]] = []
    # one entry per open element: [is framework element, text start, leading text finished]
    stack: List[list] = []

    def finish_text(*_: object) -> None:
        if not stack:
            return
        top = stack[-1]
        if top[0] and top[1] is not None and not top[2]:
            spans.append((top[1], parser.CurrentByteIndex))
        top[2] = True

    def start(name: str, attributes: object) -> None:
        finish_text()
        stack.append([_local_name(name) in FRAMEWORK_ELEMENTS, None, False])

    def end(name: str) -> None:
        finish_text()
        stack.pop()

    def text(data: str) -> None:
        if stack and stack[-1][0] and stack[-1][1] is None and not stack[-1][2]:
            stack[-1][1] = parser.CurrentByteIndex

    parser.StartElementHandler = start
    parser.EndElementHandler = end
    parser.CharacterDataHandler = text
    parser.CommentHandler = finish_text
    parser.ProcessingInstructionHandler = finish_text
    parser.Parse(raw, True)
    return spans


class ProjectDocument:
    """An MSBuild file whose framework declarations can be retargeted.

    The tree is only used for reading. Edits are spliced into the original
    bytes, so encoding marks, the XML declaration, whitespace, comments and
    processing instructions stay exactly as they were.
    """

    def __init__(self, path: Path, raw: bytes) -> None:
        self.path = path
        self._raw = raw
        self.tree = ET.ElementTree(ET.fromstring(raw))

    @classmethod
    def load(cls, path: Path) -> "ProjectDocument":
        return cls(path, path.read_bytes())

    def framework_elements(self) -> Iterator[ET.Element]:
        for element in self.tree.iter():
            if _local_name(element.tag) in FRAMEWORK_ELEMENTS:
                yield element

    def monikers(self) -> List[str]:
        values: List[str] = []
        for element in self.framework_elements():
            values.extend(token.strip() for token in (element.text or "").split(";") if token.strip())
        return values

    def replace_moniker(self, old: str, new: str) -> int:
        """Replace every exact *old* token with *new*; return the number replaced."""

        pattern = re.compile(rb"(?<![^\s;])" + re.escape(old.encode("utf-8")) + rb"(?![^\s;])")
        replacement = new.encode("utf-8")
        pieces: List[bytes] = []
        cursor = 0
        replaced = 0
        for start, end in _text_spans(self._raw):
            segment, count = pattern.subn(lambda _: replacement, self._raw[start:end])
            if not count:
                continue
            pieces.extend((self._raw[cursor:start], segment))
            cursor = end
            replaced += count
        if replaced:
            pieces.append(self._raw[cursor:])
            self._raw = b"".join(pieces)
            self.tree = ET.ElementTree(ET.fromstring(self._raw))
        return replaced

    def save(self) -> None:
        self.path.write_bytes(self._raw)


def iter_msbuild_files(root: Path) -> Iterator[Path]:
    """Yield MSBuild files below *root*, skipping build output and VCS folders."""

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in SKIPPED_DIRECTORIES)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.suffix.lower() in MSBUILD_SUFFIXES:
                yield path


@dataclass(slots=True)
class Negotiation:
    declared: ToolchainVersion | None
    installed: ToolchainVersion | None
    effective: ToolchainVersion | None
    overridden: bool = False
    patched: List[Path] = field(default_factory=list)

    @property
    def retargeted(self) -> bool:
        return self.declared is not None and self.effective is not None and self.effective != self.declared


class VersionNegotiator:
    def __init__(
        self,
        *,
        console: Console,
        override: ToolchainVersion | None = None,
        unattended: bool = False,
        on_mismatch: MismatchPolicy = MismatchPolicy.ABORT,
    ) -> None:
        self._console = console
        self._override = override
        self._unattended = unattended
        self._on_mismatch = on_mismatch

    def negotiate(self, source: SourceTree, installed: ToolchainVersion | None) -> Negotiation:
        self._console.step("Checking target framework...")
        declared_moniker = self.declared_moniker(source.project_file, source.root)
        declared = ToolchainVersion.from_moniker(declared_moniker) if declared_moniker else None
        if declared is None:
            self._console.warning("Could not determine the project's target framework")
        else:
            self._console.info(f"Project targets {declared_moniker}")

        if self._override is not None:
            effective: ToolchainVersion | None = self._override
            self._console.info(f"Using requested framework {effective.moniker}")
        elif installed is not None and declared is not None and installed < declared:
            effective = installed.fallback()
            self._accept_fallback(declared, installed, effective)
        else:
            effective = declared

        result = Negotiation(
            declared=declared,
            installed=installed,
            effective=effective,
            overridden=self._override is not None,
        )
        if result.retargeted and declared_moniker and effective is not None:
            result.patched = self.patch_declarations(source.root, declared_moniker, effective.moniker)
            if result.patched:
                self._console.success(f"Retargeted {len(result.patched)} file(s) to {effective.moniker}")
            else:
                self._console.warning(f"No declarations of {declared_moniker} were found to retarget")
        elif declared is None and self._override is not None:
            self._console.warning("Requested framework ignored: no declared framework to replace")
        return result

    def declared_moniker(self, project_file: Path, source_root: Path) -> str | None:
        """Return the target framework declared for *project_file*.

        The project file wins; otherwise ``Directory.Build.props`` files are
        consulted from the project directory up to *source_root*. With several
        frameworks the newest exact moniker is reported.
        """

        for candidate in self._declaration_candidates(project_file, source_root):
            try:
                document = ProjectDocument.load(candidate)
            except (ET.ParseError, OSError) as exc:
                self._console.warning(f"Could not read {candidate}: {exc}")
                continue
            versions = [
                (version, moniker)
                for moniker in document.monikers()
                if (version := ToolchainVersion.from_moniker(moniker)) is not None
            ]
            if versions:
                return max(versions)[1]
        return None

    @staticmethod
    def _declaration_candidates(project_file: Path, source_root: Path) -> Iterator[Path]:
        yield project_file
        root = source_root.resolve()
        directory = project_file.resolve().parent
        while True:
            props = directory / DIRECTORY_PROPS
            if props.is_file():
                yield props
            if directory == root or directory.parent == directory:
                break
            directory = directory.parent

    def patch_declarations(self, root: Path, old: str, new: str) -> List[Path]:
        """Retarget every MSBuild file under *root* declaring *old*; return patched paths."""

        if old == new:
            return []
        patched: List[Path] = []
        for path in iter_msbuild_files(root):
            try:
                document = ProjectDocument.load(path)
            except (ET.ParseError, OSError) as exc:
                self._console.debug(f"Skipping unreadable MSBuild file {path}: {exc}")
                continue
            if document.replace_moniker(old, new):
                document.save()
                patched.append(path)
                self._console.info(f"Patched {path.relative_to(root)}")
        return patched

    def _accept_fallback(
        self,
        declared: ToolchainVersion,
        installed: ToolchainVersion,
        effective: ToolchainVersion,
    ) -> None:
        self._console.warning(
            f"Project targets {declared.moniker} but the newest installed SDK is {installed}"
        )
        if self._unattended:
            if self._on_mismatch is MismatchPolicy.PATCH:
                self._console.info(f"Retargeting to {effective.moniker}")
                return
            raise ToolchainError(
                f"Installed .NET SDK {installed} is older than the project's {declared.moniker}; "
                "install a newer SDK, pass --dotnet-version, or rerun with --force to retarget"
            )
        if not self._console.confirm(f"Retarget the project to {effective.moniker} for this build?"):
            raise BuildCancelled("Build cancelled: target framework left unchanged")


__all__ = [
    "MismatchPolicy",
    "Negotiation",
    "ProjectDocument",
    "VersionNegotiator",
    "iter_msbuild_files",
]
