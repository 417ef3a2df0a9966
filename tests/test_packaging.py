from __future__ import annotations

from pathlib import Path
import io
import json
import os
import tempfile
import unittest
import zipfile

from core.archive import ArchiveManager
from extbuilder.console import Console
from extbuilder.errors import PackagingError
from extbuilder.packaging import PackageAssembler, PackagingMode
from extbuilder.platforms import PlatformTarget
from extbuilder.settings import ASSETS_DIR

TEMPLATE = {
    "manifest_version": "0.2",
    "name": "fabric-mcp-server",
    "version": "0.3.1",
    "server": {
        "type": "binary",
        "entry_point": "server/Fabric.Mcp.Server",
        "mcp_config": {"command": "${__dirname}/server/Fabric.Mcp.Server", "args": ["server", "start"]},
    },
    "compatibility": {"platforms": ["darwin", "win32"]},
}


class PackageAssemblerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.assets = self.root / "assets"
        self.assets.mkdir()
        self.template_text = json.dumps(TEMPLATE, indent=4)
        (self.assets / "manifest.json").write_text(self.template_text)
        (self.assets / "icon.png").write_bytes(b"\x89PNG")

        self.build_root = self.root / "publish"
        (self.build_root / "win-x64").mkdir(parents=True)
        (self.build_root / "win-x64" / "Fabric.Mcp.Server.exe").write_bytes(b"MZ")
        (self.build_root / "win-x64" / "Fabric.Mcp.Server.pdb").write_bytes(b"debug")
        (self.build_root / "osx-arm64").mkdir()
        (self.build_root / "osx-arm64" / "Fabric.Mcp.Server").write_bytes(b"\xcf\xfa\xed\xfe")

        self.bundle = self.root / "extension"
        self.output = self.root / "out"
        self.console = Console(level="none", color=False, stream=io.StringIO())

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _assembler(self, mode: PackagingMode, archive_format: str = "zip") -> PackageAssembler:
        return PackageAssembler(
            console=self.console,
            archive_manager=ArchiveManager(self.console),
            assets_dir=self.assets,
            mode=mode,
            archive_format=archive_format,
        )

    def _assemble(self, mode: PackagingMode, platforms, archive_format: str = "zip"):
        return self._assembler(mode, archive_format).assemble(
            build_root=self.build_root,
            bundle_dir=self.bundle,
            output_dir=self.output,
            platforms=platforms,
        )

    def test_multi_platform_bundle(self) -> None:
        result = self._assemble(PackagingMode.MULTI_PLATFORM, list(PlatformTarget))

        self.assertEqual(result.archive, self.output / "fabric-mcp-server-0.3.1.mcpb")
        self.assertEqual(result.version, "0.3.1")
        self.assertEqual(result.skipped, [PlatformTarget.OSX_X64])
        with zipfile.ZipFile(result.archive) as archive:
            names = sorted(archive.namelist())
            manifest_text = archive.read("manifest.json").decode()
        self.assertEqual(
            names,
            [
                "icon.png",
                "manifest.json",
                "server/Fabric.Mcp.Server-darwin-arm64",
                "server/Fabric.Mcp.Server.exe",
            ],
        )
        self.assertEqual(manifest_text, self.template_text)

        staged = {
            path.relative_to(self.bundle).as_posix(): path.stat().st_size
            for path in self.bundle.rglob("*")
            if path.is_file()
        }
        listed = {entry.name: entry.size for entry in ArchiveManager(self.console).list_archive(result.archive)}
        self.assertEqual(listed, staged)

    def test_unbundled_entry_point_is_reported(self) -> None:
        output = io.StringIO()
        self.console = Console(level="error", color=False, stream=output)
        self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.WIN_X64, PlatformTarget.OSX_ARM64])
        self.assertIn("[WARN] Manifest entry point server/Fabric.Mcp.Server is not in the package", output.getvalue())

    def test_bundled_template_launches_every_platform(self) -> None:
        (self.build_root / "osx-x64").mkdir()
        (self.build_root / "osx-x64" / "Fabric.Mcp.Server").write_bytes(b"\xcf\xfa\xed\xfe")
        output = io.StringIO()
        self.console = Console(level="error", color=False, stream=output)
        self.assets = ASSETS_DIR

        result = self._assemble(PackagingMode.MULTI_PLATFORM, list(PlatformTarget))
        with zipfile.ZipFile(result.archive) as archive:
            names = set(archive.namelist())
            manifest = json.loads(archive.read("manifest.json"))

        mcp_config = manifest["server"]["mcp_config"]
        commands = [mcp_config["command"]] + [entry["command"] for entry in mcp_config["platform_overrides"].values()]
        self.assertIn(manifest["server"]["entry_point"], names)
        for command in commands:
            self.assertTrue(command.startswith("${__dirname}/"))
            self.assertIn(command[len("${__dirname}/"):], names)
        self.assertEqual(output.getvalue(), "")

    def test_unix_executables_are_marked_executable(self) -> None:
        result = self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.OSX_ARM64])
        staged = result.staged[0].destination
        self.assertTrue(os.stat(staged).st_mode & 0o100)

    def test_single_primary_bundle(self) -> None:
        result = self._assemble(PackagingMode.SINGLE_PRIMARY, [PlatformTarget.OSX_ARM64, PlatformTarget.WIN_X64])

        self.assertEqual(result.primary, PlatformTarget.OSX_ARM64)
        self.assertEqual(result.archive, self.output / "fabric-mcp-server-0.3.1-osx-arm64.mcpb")
        with zipfile.ZipFile(result.archive) as archive:
            names = sorted(archive.namelist())
            manifest = json.loads(archive.read("manifest.json"))
        self.assertEqual(names, ["icon.png", "manifest.json", "server/Fabric.Mcp.Server"])
        self.assertEqual(manifest["server"]["entry_point"], "server/Fabric.Mcp.Server")
        self.assertEqual(manifest["compatibility"]["platforms"], ["darwin"])
        self.assertEqual(json.loads((self.assets / "manifest.json").read_text()), TEMPLATE)

    def test_single_primary_windows_manifest(self) -> None:
        result = self._assemble(PackagingMode.SINGLE_PRIMARY, [PlatformTarget.WIN_X64, PlatformTarget.OSX_ARM64])
        self.assertEqual(result.archive.name, "fabric-mcp-server-0.3.1-win-x64.mcpb")
        with zipfile.ZipFile(result.archive) as archive:
            manifest = json.loads(archive.read("manifest.json"))
            self.assertEqual(sorted(archive.namelist()), ["icon.png", "manifest.json", "server/Fabric.Mcp.Server.exe"])
        self.assertEqual(manifest["server"]["mcp_config"]["command"], "${__dirname}/server/Fabric.Mcp.Server.exe")
        self.assertEqual(manifest["compatibility"]["platforms"], ["win32"])

    def test_missing_primary_fails(self) -> None:
        with self.assertRaises(PackagingError):
            self._assemble(PackagingMode.SINGLE_PRIMARY, [PlatformTarget.OSX_X64, PlatformTarget.WIN_X64])

    def test_nothing_staged_fails(self) -> None:
        with self.assertRaises(PackagingError):
            self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.OSX_X64])

    def test_missing_manifest_fails(self) -> None:
        (self.assets / "manifest.json").unlink()
        with self.assertRaises(PackagingError):
            self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.WIN_X64])

    def test_rerun_replaces_archive(self) -> None:
        first = self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.WIN_X64, PlatformTarget.OSX_ARM64])
        second = self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.WIN_X64])
        self.assertEqual(first.archive, second.archive)
        with zipfile.ZipFile(second.archive) as archive:
            self.assertNotIn("server/Fabric.Mcp.Server-darwin-arm64", archive.namelist())

    def test_zst_format_name(self) -> None:
        result = self._assemble(PackagingMode.MULTI_PLATFORM, [PlatformTarget.WIN_X64], archive_format="zst")
        self.assertEqual(result.archive.name, "fabric-mcp-server-0.3.1.tar.zst")


if __name__ == "__main__":
    unittest.main()
