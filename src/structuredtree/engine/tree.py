"""NoteTree: the hierarchy built from dot-delimited file names.

Paths live in file names rather than folders, so the tree is grown and
pruned one file at a time:

* ``add_file`` walks the segments of a basename from the root, creating
  any missing intermediate notes on the way.
* ``delete_by_file_name`` drops the file association and then prunes the
  chain of ancestors that no longer host a file or any children.

Intermediate notes without a file exist only to hold their children; the
pruning rule removes them as soon as their last descendant file goes away.
The root is never pruned.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from structuredtree.engine.note import Note, is_use_title_case
from structuredtree.engine.path import ROOT_NAME, is_root_path, segments_of

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structuredtree.config import Settings
    from structuredtree.store import StoredFile

logger = logging.getLogger(__name__)


class NoteTree:
    """Owns the root note and every mutation of the hierarchy."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.root = Note(ROOT_NAME, True, settings)

    def _segments(self, name: str) -> list[str]:
        return segments_of(name, self.settings.tree.hierarchy_separator)

    def sort(self) -> None:
        self.root.sort_children(True)

    def add_file(self, file: StoredFile, rebalance: bool = False) -> Note:
        """Insert *file*, creating intermediate notes as needed.

        All notes created by this call share one titlecase flag, taken from
        the file's own basename.
        """
        titlecase = is_use_title_case(file.basename)
        segments = self._segments(file.basename)

        current = self.root
        if not is_root_path(segments):
            for name in segments:
                note = current.find_child(name)
                if note is None:
                    note = Note(name, titlecase, self.settings)
                    current.append_child(note)
                    if rebalance:
                        current.sort_children(False)
                current = note

        self.update_note_file(current, file)
        logger.debug("Added %s as %s", file.path, current.get_path())
        return current

    def update_note_file(self, note: Note, file: StoredFile) -> None:
        """Associate *file* with *note* and move it into sorted position."""
        note.file = file
        note.sort_key = (note.title or file.basename).lower()
        if note.parent is not None:
            note.parent.sort_children(False)

    def get_from_file_name(self, name: str) -> Note | None:
        segments = self._segments(name)
        if is_root_path(segments):
            return self.root

        current = self.root
        for segment in segments:
            found = current.find_child(segment)
            if found is None:
                return None
            current = found
        return current

    def delete_by_file_name(self, name: str) -> Note | None:
        """Drop the file at *name* and prune ancestors left empty.

        Returns the located note (detached if it was pruned), or ``None``
        when nothing lives at *name*.
        """
        note = self.get_from_file_name(name)
        if note is None:
            return None

        note.file = None
        current = note
        while current.parent is not None and current.file is None and not current.children:
            parent = current.parent
            parent.remove_child(current)
            logger.debug("Pruned %s from %s", current.name, parent.get_path())
            current = parent
        return note

    def walk(self) -> Iterator[Note]:
        """Pre-order traversal from the root, children in their current order."""
        stack = [self.root]
        while stack:
            note = stack.pop()
            yield note
            stack.extend(reversed(note.children))

    def flatten(self) -> list[Note]:
        return list(self.walk())
