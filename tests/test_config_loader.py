from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from core.config_loader import ConfigFileError, load_config_file, merge_mappings, normalize_string_list


class ConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_loads_toml(self) -> None:
        path = self.root / "config.toml"
        path.write_text(
            textwrap.dedent(
                """
                [build]
                platforms = ["osx-arm64"]
                jobs = 2
                """
            )
        )
        data = load_config_file(path)
        self.assertEqual(data["build"]["platforms"], ["osx-arm64"])
        self.assertEqual(data["build"]["jobs"], 2)

    def test_loads_json(self) -> None:
        path = self.root / "config.json"
        path.write_text('{"package": {"mode": "single-primary"}}')
        self.assertEqual(load_config_file(path)["package"]["mode"], "single-primary")

    def test_loads_yaml(self) -> None:
        path = self.root / "config.yaml"
        path.write_text(
            textwrap.dedent(
                """
                source:
                  clone_timeout: 30
                """
            )
        )
        self.assertEqual(load_config_file(path)["source"]["clone_timeout"], 30)

    def test_empty_yaml_is_empty_mapping(self) -> None:
        path = self.root / "config.yml"
        path.write_text("")
        self.assertEqual(load_config_file(path), {})

    def test_rejects_unknown_suffix(self) -> None:
        path = self.root / "config.ini"
        path.write_text("[build]\n")
        with self.assertRaises(ConfigFileError):
            load_config_file(path)

    def test_rejects_malformed_toml(self) -> None:
        path = self.root / "config.toml"
        path.write_text("[build\n")
        with self.assertRaises(ConfigFileError) as ctx:
            load_config_file(path)
        self.assertIn("config.toml", str(ctx.exception))

    def test_rejects_non_mapping_root(self) -> None:
        path = self.root / "config.json"
        path.write_text("[1, 2]")
        with self.assertRaises(ConfigFileError):
            load_config_file(path)

    def test_merge_mappings_is_deep(self) -> None:
        base = {"build": {"jobs": 1, "configuration": "Release"}, "package": {"name": "x"}}
        merged = merge_mappings(base, {"build": {"jobs": 4}})
        self.assertEqual(merged["build"], {"jobs": 4, "configuration": "Release"})
        self.assertEqual(merged["package"], {"name": "x"})
        self.assertEqual(base["build"]["jobs"], 1)

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list("a, b,,c"), ["a", "b", "c"])
        self.assertEqual(normalize_string_list([" a ", "b"]), ["a", "b"])
        self.assertEqual(normalize_string_list(None), [])
        with self.assertRaises(TypeError):
            normalize_string_list([1, 2], field_name="build.platforms")
        with self.assertRaises(TypeError):
            normalize_string_list(5)


if __name__ == "__main__":
    unittest.main()
