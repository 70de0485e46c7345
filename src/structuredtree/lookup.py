"""Note lookup: fuzzy and exact search over every vault's flattened tree.

The index is derived state. It is rebuilt lazily on the first search after
:meth:`LookupIndex.invalidate`, so staleness between a tree change and the
next search is tolerated. Ranking is delegated to a pluggable
``SearchOracle``; the default one uses rapidfuzz partial-ratio alignment,
which also yields the match spans used for highlighting.

Exclusion patterns never remove notes from results; they only push them
to the end.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Protocol

from rapidfuzz import fuzz
from rich.markup import escape

from structuredtree.engine.note import collation_key

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from structuredtree.config import Settings
    from structuredtree.engine.note import Note
    from structuredtree.engine.vault import StructuredVault
    from structuredtree.engine.workspace import StructuredWorkspace
    from structuredtree.events import TreeChangedEvent
    from structuredtree.store import StoredFile

logger = logging.getLogger(__name__)


def is_path_excluded(path: str, patterns: Sequence[str]) -> bool:
    """Whether dotted *path* starts with any pattern (``*`` matches anything)."""
    for pattern in patterns:
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        if re.match(regex, path):
            return True
    return False


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchKey:
    """A searchable field of a lookup item and its relative weight."""

    name: str
    getter: Callable[[LookupItem], str]
    weight: float = 1.0


@dataclass(frozen=True, slots=True)
class FieldMatch:
    """Where the query matched inside one field (end-exclusive spans)."""

    key: str
    value: str
    spans: tuple[tuple[int, int], ...]


@dataclass(slots=True)
class LookupItem:
    note: Note
    vault: StructuredVault
    excluded: bool = False
    matches: tuple[FieldMatch, ...] = ()

    @property
    def path(self) -> str:
        return self.note.get_path()


@dataclass(frozen=True, slots=True)
class CreateNew:
    """Offer to create a note at *query*; no existing note has that path."""

    query: str
    type: str = field(default="create_new", init=False)


type LookupResult = LookupItem | CreateNew


@dataclass(frozen=True, slots=True)
class SearchHit:
    item: LookupItem
    score: float
    matches: tuple[FieldMatch, ...]


class SearchOracle(Protocol):
    def search(
        self, query: str, items: Sequence[LookupItem], keys: Sequence[SearchKey]
    ) -> list[SearchHit]: ...


def _file_name(item: LookupItem) -> str:
    return item.note.file.name if item.note.file is not None else ""


def default_search_keys(file_name_weight: float) -> list[SearchKey]:
    return [
        SearchKey("title", lambda item: item.note.title),
        SearchKey("path", lambda item: item.path),
        SearchKey("file_name", _file_name, file_name_weight),
    ]


class RapidFuzzOracle:
    """Weighted fuzzy matching with ``rapidfuzz.fuzz.partial_ratio_alignment``.

    ``threshold`` follows the looser-is-higher convention: 0.0 only accepts
    perfect substring matches, 1.0 accepts anything.
    """

    def __init__(self, threshold: float = 0.2) -> None:
        self.threshold = threshold

    def search(
        self, query: str, items: Sequence[LookupItem], keys: Sequence[SearchKey]
    ) -> list[SearchHit]:
        needle = query.strip().lower()
        if not needle or not keys:
            return []
        max_weight = max(key.weight for key in keys) or 1.0
        cutoff = (1.0 - self.threshold) * 100

        hits: list[SearchHit] = []
        for item in items:
            matches: list[FieldMatch] = []
            best = 0.0
            for key in keys:
                value = key.getter(item)
                if not value:
                    continue
                alignment = fuzz.partial_ratio_alignment(
                    needle, value.lower(), score_cutoff=cutoff
                )
                if alignment is None:
                    continue
                matches.append(
                    FieldMatch(
                        key=key.name,
                        value=value,
                        spans=((alignment.dest_start, alignment.dest_end),),
                    )
                )
                best = max(best, alignment.score / 100 * key.weight / max_weight)
            if matches:
                hits.append(SearchHit(item=item, score=best, matches=tuple(matches)))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


class LookupIndex:
    """Searchable list of every note in every vault.

    Usage:
        index = LookupIndex(workspace, settings)
        bus.subscribe(TreeChangedEvent, index.on_tree_changed)
        results = index.search("proj back", active_file=current)
    """

    def __init__(
        self,
        workspace: StructuredWorkspace,
        settings: Settings,
        oracle: SearchOracle | None = None,
    ) -> None:
        self._workspace = workspace
        self._config = settings.lookup
        self._oracle = oracle or RapidFuzzOracle(self._config.threshold)
        self._keys = default_search_keys(self._config.file_name_weight)
        self._items: list[LookupItem] | None = None

    def invalidate(self) -> None:
        self._items = None

    async def on_tree_changed(self, event: TreeChangedEvent) -> None:
        self.invalidate()

    @property
    def items(self) -> list[LookupItem]:
        if self._items is None:
            self._items = self._build()
        return self._items

    def _build(self) -> list[LookupItem]:
        excluded_paths = self._config.excluded_paths
        items = [
            LookupItem(
                note=note,
                vault=vault,
                excluded=is_path_excluded(note.get_path(), excluded_paths),
            )
            for vault in self._workspace.vault_list
            for note in vault.tree.flatten()
        ]
        items.sort(key=lambda item: (item.excluded, collation_key(item.note.title.lower())))
        logger.debug("Lookup index rebuilt with %d notes", len(items))
        return items

    def search(self, query: str, active_file: StoredFile | None = None) -> list[LookupResult]:
        """Ranked notes for *query*, as seen from *active_file*.

        Notes of secret vaults are left out unless *active_file* lives in them.
        """
        visible = [item for item in self.items if item.vault.is_accessible_from(active_file)]
        if not query.strip():
            return [item for item in visible if not item.excluded]

        needle = query.lower()
        result: list[LookupItem]
        if len(query) > self._config.exact_match_min_length:
            exact = [item for item in visible if item.path.lower() == needle]
            result = exact or [item for item in visible if needle in item.path.lower()]
        else:
            result = [
                replace(hit.item, matches=hit.matches)
                for hit in self._oracle.search(query, visible, self._keys)
            ]

        def rank(item: LookupItem) -> tuple[bool, bool, int]:
            position = item.path.lower().find(needle)
            return item.excluded, position < 0, position

        result.sort(key=rank)

        results: list[LookupResult] = list(result[: self._config.max_results])
        if not any(item.path.lower() == needle for item in result):
            results.insert(0, CreateNew(query=query))
        return results


def highlight_matches(text: str, matches: Sequence[FieldMatch], keys: Sequence[str]) -> str | None:
    """Rich markup for *text* with matched spans in bold, ``None`` if nothing matched."""
    spans = sorted(span for match in matches if match.key in keys for span in match.spans)
    if not spans:
        return None

    parts: list[str] = []
    last = 0
    for start, end in spans:
        if start < last or start >= end:
            continue
        parts.append(escape(text[last:start]))
        parts.append(f"[bold]{escape(text[start:end])}[/bold]")
        last = end
    if last == 0:
        return None
    parts.append(escape(text[last:]))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Debounced requests
# ---------------------------------------------------------------------------


class LookupRequester:
    """Debounces lookup queries; only the latest query's results are delivered.

    Issuing a new request supersedes any pending one. Call from the event
    loop thread.
    """

    def __init__(
        self,
        index: LookupIndex,
        on_results: Callable[[str, list[LookupResult]], None],
        debounce_ms: int = 150,
    ) -> None:
        self._index = index
        self._on_results = on_results
        self._debounce_s = debounce_ms / 1000.0
        self._generation = 0
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request(self, query: str, active_file: StoredFile | None = None) -> None:
        self.cancel()
        self._generation += 1
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(
            self._debounce_s, self._fire, self._generation, query, active_file
        )

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, generation: int, query: str, active_file: StoredFile | None) -> None:
        if generation != self._generation:
            logger.debug("Discarding superseded lookup %r", query)
            return
        self._handle = None
        self._on_results(query, self._index.search(query, active_file))
