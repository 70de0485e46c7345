"""Export the dotted hierarchy as a plain folder tree.

Each vault becomes ``<dest>/<vault name>/``. A note with children becomes a
folder named after its title holding a same-named file; a leaf becomes a
file. Titles are sanitized into file names and clashes get ``(n)``
suffixes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from structuredtree.engine.note import Note
    from structuredtree.engine.workspace import StructuredWorkspace
    from structuredtree.store import FileStore

logger = logging.getLogger(__name__)

INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')
WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class ExportReport:
    folder: Path
    exported: int = 0
    failed: int = 0


def sanitize_file_name(title: str) -> str:
    """Drop characters file systems reject and collapse whitespace."""
    return WHITESPACE.sub(" ", INVALID_CHARS.sub("", title)).strip()


def unique_file_path(path: Path) -> Path:
    """*path*, or ``name (n).ext`` with the first free ``n``."""
    candidate = path
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem} ({counter}){path.suffix}")
        counter += 1
    return candidate


def export_hierarchy(workspace: StructuredWorkspace, dest: Path) -> ExportReport:
    """Write every initialized vault's notes under *dest*.

    A failure while exporting one top-level subtree is logged and counted;
    the remaining subtrees are still exported.
    """
    dest.mkdir(parents=True, exist_ok=True)
    report = ExportReport(folder=dest)

    for vault in workspace.vault_list:
        if not vault.is_initialized:
            continue
        vault_folder = dest / sanitize_file_name(vault.name)
        vault_folder.mkdir(parents=True, exist_ok=True)
        for top in vault.tree.root.children:
            try:
                report.exported += _export_note(vault.store, top, vault_folder)
            except OSError:
                logger.exception("Failed to export hierarchy under %s", top.title)
                report.failed += 1

    logger.info("Exported %d notes to %s (%d failed)", report.exported, dest, report.failed)
    return report


def _export_note(store: FileStore, note: Note, folder: Path) -> int:
    name = sanitize_file_name(note.title) or note.name
    exported = 0

    target_folder = folder
    if note.children:
        target_folder = folder / name
        target_folder.mkdir(parents=True, exist_ok=True)

    if note.file is not None:
        suffix = f".{note.file.extension}" if note.file.extension else ""
        target = unique_file_path(target_folder / f"{name}{suffix}")
        target.write_bytes(store.read_bytes(note.file))
        exported += 1

    for child in note.children:
        exported += _export_note(store, child, target_folder)
    return exported

