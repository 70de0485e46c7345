"""Note graph: hierarchy and wikilink edges across every vault, backed by NetworkX.

Node keys are ``structured://<vault>/<path>`` for notes (lowercase) and the
store path for attachments. Hierarchy edges point from a note to its
nearest ancestor that has a file, weighted ``1 / level difference``, so a
note whose direct parent is virtual still hangs off the closest real one.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

import networkx as nx

from structuredtree.engine.ref import STRUCTURED_URI_START, FileRef, MaybeNoteRef

if TYPE_CHECKING:
    from pathlib import Path

    from structuredtree.engine.note import Note
    from structuredtree.engine.vault import StructuredVault
    from structuredtree.engine.workspace import StructuredWorkspace

logger = logging.getLogger(__name__)

WIKILINK_PATTERN = re.compile(r"!?\[\[([^\]|]+)(?:\|[^\]]+)?\]\]")


def note_key(vault_name: str, path: str) -> str:
    return f"{STRUCTURED_URI_START}{vault_name}/{path}".lower()


def _depth(note: Note) -> int:
    depth = 0
    current = note.parent
    while current is not None:
        depth += 1
        current = current.parent
    return depth


def _nearest_file_ancestor(note: Note) -> tuple[Note, int] | None:
    """Closest ancestor with a file and how many levels up it sits."""
    levels = 1
    current = note.parent
    while current is not None and current.parent is not None:
        if current.file is not None:
            return current, levels
        levels += 1
        current = current.parent
    return None


def build_graph(workspace: StructuredWorkspace) -> nx.DiGraph:
    """Graph of every note with a file, its hierarchy and its outgoing links."""
    graph = nx.DiGraph()

    for vault in workspace.vault_list:
        if not vault.is_initialized:
            continue
        for note in vault.tree.walk():
            if note.file is None or note.parent is None:
                continue
            graph.add_node(
                note_key(vault.name, note.get_path()),
                type="note",
                vault=vault.name,
                title=note.title,
                path=note.file.path,
                depth=_depth(note),
            )

    for vault in workspace.vault_list:
        if not vault.is_initialized:
            continue
        for note in vault.tree.walk():
            if note.file is None or note.parent is None:
                continue
            source = note_key(vault.name, note.get_path())
            found = _nearest_file_ancestor(note)
            if found is not None:
                ancestor, levels = found
                graph.add_edge(
                    source,
                    note_key(vault.name, ancestor.get_path()),
                    type="hierarchy",
                    weight=1 / levels,
                )
            _add_link_edges(graph, workspace, vault, note, source)

    logger.info(
        "Built note graph: %d nodes, %d edges", graph.number_of_nodes(), graph.number_of_edges()
    )
    return graph


def _add_link_edges(
    graph: nx.DiGraph,
    workspace: StructuredWorkspace,
    vault: StructuredVault,
    note: Note,
    source: str,
) -> None:
    file = note.file
    if file is None or file.extension != workspace.settings.tree.note_extension:
        return
    try:
        content = vault.store.read_content(file)
    except OSError:
        logger.warning("Cannot read %s for links", file.path)
        return

    for match in WIKILINK_PATTERN.finditer(content):
        target = workspace.resolve_ref(file.path, match.group(1).strip())
        if isinstance(target, MaybeNoteRef):
            key = note_key(target.vault_name, target.path)
            if key not in graph:
                graph.add_node(key, type="unresolved", vault=target.vault_name, title=target.path)
        elif isinstance(target, FileRef):
            key = target.file.path
            if key not in graph:
                graph.add_node(key, type="attachment", path=key)
        else:
            continue
        # One edge per pair; a hierarchy edge wins over a link to the same note
        if key != source and not graph.has_edge(source, key):
            graph.add_edge(source, key, type="link", weight=1.0)


def graph_stats(graph: nx.DiGraph) -> dict[str, Any]:
    edge_types = [data.get("type") for _, _, data in graph.edges(data=True)]
    return {
        "nodes": graph.number_of_nodes(),
        "edges": graph.number_of_edges(),
        "hierarchy_edges": edge_types.count("hierarchy"),
        "link_edges": edge_types.count("link"),
        "unresolved": sum(1 for _, t in graph.nodes(data="type") if t == "unresolved"),
        "orphans": sum(1 for n in graph.nodes if graph.degree(n) == 0),
    }


def save_graph(graph: nx.DiGraph, path: Path) -> None:
    """Persist *graph* as node-link JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = nx.node_link_data(graph, edges="edges")
    with open(path, "w") as f:
        json.dump(data, f, indent=2, default=str)
    logger.debug("Saved graph to %s", path)
