"""Tests for settings: validation, legacy migration, per-vault overrides, TOML loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from structuredtree.config import (
    LookupConfig,
    Settings,
    TreeConfig,
    VaultConfig,
    load_settings,
    normalize_folder_path,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestTreeConfig:
    def test_empty_separator_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TreeConfig(hierarchy_separator="")

    def test_separator_truncated(self) -> None:
        assert TreeConfig(hierarchy_separator="___").hierarchy_separator == "__"

    def test_canvas_off_by_default(self) -> None:
        config = TreeConfig()
        assert not config.enable_canvas_support
        assert "canvas" not in config.accepted_extensions


class TestVaults:
    def test_path_normalized(self) -> None:
        assert VaultConfig(name="n", path="/notes/work/").path == "notes/work"
        assert VaultConfig(name="r", path="/").path == ""

    def test_normalize_folder_path(self) -> None:
        assert normalize_folder_path(" /a/b/ ") == "a/b"

    def test_default_is_store_root_vault(self) -> None:
        vaults = Settings().vaults
        assert [(v.name, v.path) for v in vaults] == [("root", "")]

    def test_legacy_vault_path(self) -> None:
        settings = Settings(vault_path="notes/work")
        assert [(v.name, v.path) for v in settings.vaults] == [("work", "notes/work")]

    def test_legacy_ignored_when_vaults_given(self) -> None:
        settings = Settings(vault_path="old", vaults=[{"name": "new", "path": "new"}])
        assert [v.name for v in settings.vaults] == ["new"]

    def test_plain_string_vaults(self) -> None:
        settings = Settings(vaults=["/", "notes/daily"])
        assert [(v.name, v.path) for v in settings.vaults] == [
            ("root", ""),
            ("daily", "notes/daily"),
        ]

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate vault name"):
            Settings(vaults=[{"name": "a", "path": "x"}, {"name": "a", "path": "y"}])


class TestProperties:
    def test_inherits_without_overrides(self) -> None:
        settings = Settings(vaults=[{"name": "a", "path": "a"}])
        assert settings.properties_for(settings.vaults[0]) is settings.properties

    def test_overrides_applied(self) -> None:
        settings = Settings(
            properties={"generate_id": False, "generate_tags": True},
            vaults=[{"name": "a", "path": "a", "properties": {"generate_id": True}}],
        )
        props = settings.properties_for(settings.vaults[0])
        assert props.generate_id
        assert props.generate_tags
        assert not settings.properties.generate_id

    def test_created_format_validated(self) -> None:
        with pytest.raises(ValidationError):
            Settings(properties={"created_format": "dd/mm/yyyy"})


class TestLookupConfig:
    def test_threshold_range(self) -> None:
        with pytest.raises(ValidationError, match="between 0 and 1"):
            LookupConfig(threshold=1.5)


class TestLoadSettings:
    def test_from_toml(self, tmp_path: Path) -> None:
        config = tmp_path / "config.toml"
        config.write_text(
            f"""
store_root = "{tmp_path.as_posix()}"

[tree]
hierarchy_separator = "__"
enable_canvas_support = true

[lookup]
max_results = 5
excluded_paths = ["archive"]

[[vaults]]
name = "main"
path = "notes"

[[vaults]]
name = "diary"
path = "private/diary"
is_secret = true
"""
        )
        settings = load_settings(config)
        assert settings.store_root == tmp_path
        assert settings.tree.hierarchy_separator == "__"
        assert settings.tree.enable_canvas_support
        assert settings.lookup.max_results == 5
        assert settings.lookup.excluded_paths == ["archive"]
        assert [v.name for v in settings.vaults] == ["main", "diary"]
        assert settings.vaults[1].is_secret

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nope.toml")
        assert settings.tree.hierarchy_separator == "."
        assert settings.watch.debounce_ms == 200

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STRUCTUREDTREE_LOOKUP__MAX_RESULTS", "3")
        assert Settings().lookup.max_results == 3
