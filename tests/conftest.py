"""Shared fixtures: a temporary store with a synchronously synced workspace."""

from __future__ import annotations

import locale
from typing import TYPE_CHECKING, Any

import pytest

from structuredtree.config import Settings
from structuredtree.engine import StructuredWorkspace
from structuredtree.store import FrontmatterMetadataProvider, LocalFileStore
from structuredtree.sync import TreeSynchronizer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def c_collation() -> Iterator[None]:
    """Pin LC_COLLATE to C so ordering does not depend on the host or the CLI."""
    saved = locale.setlocale(locale.LC_COLLATE)
    locale.setlocale(locale.LC_COLLATE, "C")
    yield
    locale.setlocale(locale.LC_COLLATE, saved)


@pytest.fixture()
def store_root(tmp_path: Path) -> Path:
    root = tmp_path / "store"
    (root / "notes").mkdir(parents=True)
    return root


@pytest.fixture()
def write(store_root: Path) -> Callable[..., Path]:
    """Write a file at a store-relative path behind the store's back."""

    def _write(rel: str, content: str = "") -> Path:
        path = store_root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def make_settings(store_root: Path) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        data: dict[str, Any] = {
            "store_root": store_root,
            "vaults": [{"name": "main", "path": "notes"}],
        }
        data.update(overrides)
        return Settings(**data)

    return _make


@pytest.fixture()
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture()
def make_workspace(
    store_root: Path,
) -> Callable[[Settings], tuple[StructuredWorkspace, LocalFileStore]]:
    """Workspace over *store_root* whose trees follow store events synchronously."""

    def _make(settings: Settings) -> tuple[StructuredWorkspace, LocalFileStore]:
        store = LocalFileStore(store_root)
        metadata = FrontmatterMetadataProvider(store, settings.tree.note_extension)
        workspace = StructuredWorkspace(settings, store, metadata)
        workspace.change_vault(settings.vaults)
        store.subscribe(TreeSynchronizer(workspace).apply)
        return workspace, store

    return _make
