"""Configuration management for structuredtree.

Loads from environment variables, .env files, and a TOML file.

The settings object is bound to a workspace when it is built. Changing the
vault list or the hierarchy separator means building a fresh workspace
(or calling ``StructuredWorkspace.change_vault``) rather than mutating a
shared instance.
"""

from __future__ import annotations

import tomllib
from pathlib import Path, PurePosixPath
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STRUCTUREDTREE_HOME = Path.home() / ".structuredtree"

# Files that count as notes in a vault
DEFAULT_NOTE_EXTENSIONS = [
    "md",
    "pdf",
    # Images
    "avif",
    "bmp",
    "gif",
    "jpeg",
    "jpg",
    "png",
    "svg",
    # Audio
    "flac",
    "m4a",
    "mp3",
    "ogg",
    "wav",
    "webm",
    # Video
    "3gp",
    "mkv",
    "mov",
    "mp4",
    "ogv",
]
EXPERIMENTAL_EXTENSIONS = ["canvas"]


class TreeConfig(BaseSettings):
    """Hierarchy and file-type policy shared by every vault."""

    hierarchy_separator: str = "."
    note_extension: str = "md"
    accepted_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_NOTE_EXTENSIONS))
    enable_canvas_support: bool = False

    @field_validator("hierarchy_separator")
    @classmethod
    def validate_separator(cls, v: str) -> str:
        if not v:
            raise ValueError("Hierarchy separator must not be empty")
        return v[:2]


class PropertyConfig(BaseSettings):
    """Which front-matter keys to auto-populate, and under which names."""

    auto_generate: bool = True
    generate_id: bool = False
    generate_title: bool = True
    generate_desc: bool = True
    generate_created: bool = False
    generate_tags: bool = False
    id_key: str = "id"
    title_key: str = "title"
    desc_key: str = "desc"
    created_key: str = "created"
    created_format: Literal["yyyy-mm-dd", "unix"] = "yyyy-mm-dd"


class PropertyOverrides(BaseModel):
    """Per-vault overrides. ``None`` inherits the global value."""

    auto_generate: bool | None = None
    generate_id: bool | None = None
    generate_title: bool | None = None
    generate_desc: bool | None = None
    generate_created: bool | None = None
    generate_tags: bool | None = None
    created_format: Literal["yyyy-mm-dd", "unix"] | None = None


class VaultConfig(BaseModel):
    """One vault: a root folder in the store plus its display name."""

    path: str = Field(description="Store-relative folder acting as the vault root")
    name: str
    is_secret: bool = False
    properties: PropertyOverrides | None = None

    @field_validator("path")
    @classmethod
    def normalize_path(cls, v: str) -> str:
        return normalize_folder_path(v)


class LookupConfig(BaseSettings):
    """Lookup tuning."""

    file_name_weight: float = 0.6
    threshold: float = 0.2
    max_results: int = 10
    exact_match_min_length: int = 60
    debounce_ms: int = 150
    excluded_paths: list[str] = Field(default_factory=list)

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Lookup threshold must be between 0 and 1: {v}")
        return v


class WatchConfig(BaseSettings):
    """File watcher configuration."""

    debounce_ms: int = 200
    excluded_folders: list[str] = Field(default_factory=lambda: [".obsidian", ".git", ".trash"])


class Settings(BaseSettings):
    """Root configuration; aggregates all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="STRUCTUREDTREE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    store_root: Path = Field(default_factory=lambda: STRUCTUREDTREE_HOME / "vault")
    tree: TreeConfig = Field(default_factory=TreeConfig)
    properties: PropertyConfig = Field(default_factory=PropertyConfig)
    lookup: LookupConfig = Field(default_factory=LookupConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    vaults: list[VaultConfig] = Field(
        default_factory=lambda: [VaultConfig(name="root", path="/")]
    )

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_vaults(cls, data: Any) -> Any:
        """Accept ``vault_path = "..."`` and plain string vault lists."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy = data.pop("vault_path", None)
        if legacy and not data.get("vaults"):
            data["vaults"] = [_path_to_vault_config(legacy)]
        vaults = data.get("vaults")
        if isinstance(vaults, list):
            data["vaults"] = [
                _path_to_vault_config(v) if isinstance(v, str) else v for v in vaults
            ]
        return data

    @field_validator("store_root")
    @classmethod
    def expand_store_root(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("vaults")
    @classmethod
    def validate_unique_names(cls, v: list[VaultConfig]) -> list[VaultConfig]:
        seen: set[str] = set()
        for vault in v:
            if vault.name in seen:
                raise ValueError(f"Duplicate vault name: {vault.name}")
            seen.add(vault.name)
        return v

    def properties_for(self, vault: VaultConfig) -> PropertyConfig:
        """Effective property policy for *vault* (global values + overrides)."""
        if vault.properties is None:
            return self.properties
        overrides = vault.properties.model_dump(exclude_none=True)
        return self.properties.model_copy(update=overrides)

    @classmethod
    def from_toml(cls, path: Path | None = None) -> Settings:
        """Load settings from TOML file, with env var overrides."""
        config_path = path or Path("config/default.toml")
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        return cls()


def normalize_folder_path(path: str) -> str:
    """Store-relative folder path: no leading/trailing slash, ``""`` for the root."""
    return path.strip().strip("/")


def _path_to_vault_config(path: str) -> dict[str, str]:
    normalized = normalize_folder_path(path)
    if not normalized:
        return {"name": "root", "path": "/"}
    return {"name": PurePosixPath(normalized).name, "path": normalized}


def load_settings(config_path: Path | None = None) -> Settings:
    """Load and validate settings. Entry point for all config access."""
    return Settings.from_toml(config_path)
