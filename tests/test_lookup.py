"""Tests for note lookup: ranking, exclusion, visibility, highlighting, debounced requests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from structuredtree.events import TreeChangedEvent
from structuredtree.lookup import (
    CreateNew,
    FieldMatch,
    LookupIndex,
    LookupItem,
    LookupRequester,
    RapidFuzzOracle,
    default_search_keys,
    highlight_matches,
    is_path_excluded,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from structuredtree.config import Settings
    from structuredtree.engine import StructuredWorkspace
    from structuredtree.lookup import LookupResult
    from structuredtree.store import LocalFileStore

    type IndexFactory = Callable[..., tuple[LookupIndex, LocalFileStore]]


@pytest.fixture()
def make_index(
    write: Callable[..., Path],
    make_settings: Callable[..., Settings],
    make_workspace: Callable[[Settings], tuple[StructuredWorkspace, LocalFileStore]],
) -> IndexFactory:
    write("notes/project.md", "---\ntitle: Project\n---\n")
    write("notes/project.backend.md")
    write("notes/project.frontend.md")
    write("notes/daily.2024.md")
    write("diary/today.md")

    def _make(**lookup: Any) -> tuple[LookupIndex, LocalFileStore]:
        settings = make_settings(
            vaults=[
                {"name": "main", "path": "notes"},
                {"name": "diary", "path": "diary", "is_secret": True},
            ],
            lookup=lookup,
        )
        workspace, store = make_workspace(settings)
        return LookupIndex(workspace, settings), store

    return _make


def paths(results: list[LookupResult]) -> list[str]:
    return [r.path for r in results if isinstance(r, LookupItem)]


class TestIsPathExcluded:
    def test_prefix(self) -> None:
        assert is_path_excluded("archive.old", ["archive"])
        assert not is_path_excluded("old.archive", ["archive"])

    def test_wildcard(self) -> None:
        assert is_path_excluded("daily.2024.01", ["daily.*.01"])
        assert not is_path_excluded("daily.2024.02", ["daily.*.01"])

    def test_dots_are_literal(self) -> None:
        assert not is_path_excluded("dailyx2024", ["daily.2024"])

    def test_no_patterns(self) -> None:
        assert not is_path_excluded("anything", [])


class TestSearch:
    def test_blank_query_lists_non_excluded(self, make_index: IndexFactory) -> None:
        index, _ = make_index(excluded_paths=["daily"])
        result = paths(index.search("  "))
        assert "project.backend" in result
        assert "daily" not in result
        assert "daily.2024" not in result
        assert "today" not in result

    def test_fuzzy_offers_create_new(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        results = index.search("backend")
        assert results[0] == CreateNew(query="backend")
        assert results[1].path == "project.backend"

    def test_exact_path_suppresses_create_new(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        results = index.search("project")
        assert not any(isinstance(r, CreateNew) for r in results)
        assert "project" in paths(results)

    def test_excluded_ranked_last(self, make_index: IndexFactory) -> None:
        index, _ = make_index(excluded_paths=["project.front*"])
        results = [r for r in index.search("project") if isinstance(r, LookupItem)]
        assert results[-1].path == "project.frontend"
        assert results[-1].excluded
        assert not any(r.excluded for r in results[:-1])

    def test_secret_vault_needs_active_file(self, make_index: IndexFactory) -> None:
        index, store = make_index()
        assert "today" not in paths(index.search("today"))

        active = store.get_file("diary/today.md")
        assert "today" in paths(index.search("today", active_file=active))

    def test_max_results(self, make_index: IndexFactory) -> None:
        index, _ = make_index(max_results=2)
        results = index.search("project")
        assert len(results) == 2
        assert all(isinstance(r, LookupItem) for r in results)

    def test_long_query_matches_exactly(self, make_index: IndexFactory) -> None:
        index, _ = make_index(exact_match_min_length=5)
        assert paths(index.search("project.backend")) == ["project.backend"]

    def test_long_query_falls_back_to_substring(self, make_index: IndexFactory) -> None:
        index, _ = make_index(exact_match_min_length=5)
        results = index.search("ject.back")
        assert results[0] == CreateNew(query="ject.back")
        assert paths(results) == ["project.backend"]

    def test_matches_carry_spans(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        item = index.search("backend")[1]
        title_match = next(m for m in item.matches if m.key == "title")
        assert title_match.value == "Backend"
        assert title_match.spans == ((0, 7),)

    def test_blank_query_sorted_by_locale_title(
        self, make_index: IndexFactory, write: Callable[..., Path]
    ) -> None:
        write("notes/zebra.md")
        write("notes/eclair.md", "---\ntitle: \u00c9clair\n---\n")
        write("notes/banana.md", "---\ntitle: Banana\n---\n")
        write("notes/pie.md", "---\ntitle: apple pie\n---\n")
        index, _ = make_index()

        wanted = {"apple pie", "Banana", "\u00c9clair", "Zebra"}
        titles = [r.note.title for r in index.search("") if r.note.title in wanted]
        assert titles == ["apple pie", "Banana", "\u00c9clair", "Zebra"]


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_rebuilt_after_tree_change(self, make_index: IndexFactory) -> None:
        index, store = make_index()
        assert "fresh" not in paths(index.search("fresh"))

        store.create_file("notes/fresh.md", "body")
        assert "fresh" not in paths(index.search("fresh"))

        await index.on_tree_changed(TreeChangedEvent(vault_names=("main",)))
        assert "fresh" in paths(index.search("fresh"))


class TestRapidFuzzOracle:
    def test_zero_threshold_needs_substring(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        oracle = RapidFuzzOracle(threshold=0.0)
        keys = default_search_keys(0.6)
        hits = oracle.search("backnd", index.items, keys)
        assert hits == []
        hits = oracle.search("backend", index.items, keys)
        assert [h.item.path for h in hits] == ["project.backend"]

    def test_file_name_weight(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        keys = [k for k in default_search_keys(0.5) if k.name == "file_name"]
        hits = RapidFuzzOracle().search("daily.2024.md", index.items, keys)
        assert hits[0].score == pytest.approx(1.0)


class TestHighlightMatches:
    def test_bold_spans(self) -> None:
        matches = [FieldMatch("title", "Backend", ((0, 4),))]
        assert highlight_matches("Backend", matches, ["title"]) == "[bold]Back[/bold]end"

    def test_other_keys_ignored(self) -> None:
        matches = [FieldMatch("path", "project.backend", ((0, 4),))]
        assert highlight_matches("Backend", matches, ["title"]) is None

    def test_markup_escaped(self) -> None:
        matches = [FieldMatch("title", "a[b]", ((0, 1),))]
        assert highlight_matches("a[b]", matches, ["title"]) == "[bold]a[/bold]\\[b]"


class TestLookupRequester:
    @pytest.mark.asyncio
    async def test_latest_request_wins(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        delivered: list[str] = []
        requester = LookupRequester(index, lambda q, _r: delivered.append(q), debounce_ms=20)

        requester.request("proj")
        requester.request("back")
        assert requester.pending

        await asyncio.sleep(0.1)
        assert delivered == ["back"]
        assert not requester.pending

    @pytest.mark.asyncio
    async def test_cancel(self, make_index: IndexFactory) -> None:
        index, _ = make_index()
        delivered: list[str] = []
        requester = LookupRequester(index, lambda q, _r: delivered.append(q), debounce_ms=20)

        requester.request("proj")
        requester.cancel()
        await asyncio.sleep(0.05)
        assert delivered == []
