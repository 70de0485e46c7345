"""Rename a note together with every descendant file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from structuredtree.store import join_store_path

if TYPE_CHECKING:
    from structuredtree.engine.vault import StructuredVault
    from structuredtree.store import StoredFile

logger = logging.getLogger(__name__)


class NoteRenamer:
    """Renames ``a.b`` to ``x.y`` and moves ``a.b.c`` to ``x.y.c`` along with it.

    Every rename goes through the store; the tree follows the resulting
    rename events.
    """

    def __init__(self, vault: StructuredVault) -> None:
        self._vault = vault

    def find_descendant_files(self, file: StoredFile) -> list[StoredFile]:
        note = self._vault.get_note(file.basename)
        if note is None:
            return []
        files: list[StoredFile] = []
        stack = list(note.children)
        while stack:
            child = stack.pop()
            if child.file is not None:
                files.append(child.file)
            stack.extend(child.children)
        return files

    def rename_note(self, file: StoredFile, new_name: str) -> StoredFile:
        """Rename *file* to the dotted path *new_name*. Returns the renamed file."""
        folder = file.parent_path
        old_prefix = file.basename
        separator = self._vault.settings.tree.hierarchy_separator

        for child in self.find_descendant_files(file):
            suffix = child.name[len(old_prefix) :]
            if not suffix.startswith(separator):
                logger.warning("Skipping %s: not under %s", child.path, old_prefix)
                continue
            self._vault.store.rename_file(child, join_store_path(folder, new_name + suffix))

        extension = f".{file.extension}" if file.extension else ""
        renamed = self._vault.store.rename_file(
            file, join_store_path(folder, f"{new_name}{extension}")
        )
        logger.info("Renamed note %s -> %s", old_prefix, new_name)
        return renamed
