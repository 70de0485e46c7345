"""Note: one node of the hierarchy tree."""

from __future__ import annotations

import locale
import logging
import unicodedata
from typing import TYPE_CHECKING, Any

from structuredtree.engine.path import join_normalized, join_original

if TYPE_CHECKING:
    from structuredtree.config import Settings
    from structuredtree.store import StoredFile

logger = logging.getLogger(__name__)

type NoteMetadata = dict[str, Any]


class NoteHasParentError(RuntimeError):
    """Raised when a note that is already attached is appended elsewhere."""

    def __init__(self, note: Note) -> None:
        self.note = note
        super().__init__(f"Note has parent: '{note.name}' is already attached")


def is_use_title_case(basename: str) -> bool:
    """Generated titles are title-cased only for all-lowercase file names."""
    return basename.lower() == basename


def generate_note_title(original_name: str, titlecase: bool) -> str:
    """Title for a note without one in its front-matter.

    ``aku-cinta`` becomes ``Aku Cinta`` when *titlecase* is set, otherwise
    the segment is used verbatim.
    """
    if not titlecase:
        return original_name
    words = (word.strip() for word in original_name.split("-"))
    return " ".join(word[0].upper() + word[1:].lower() for word in words if word)


def _is_codepoint_collation() -> bool:
    name = locale.setlocale(locale.LC_COLLATE)
    return name in ("C", "POSIX") or name.startswith("C.")


def collation_key(text: str) -> str:
    """Locale-aware sort key for *text*.

    Under the C locale ``strxfrm`` only compares code points, which puts
    ``Banana`` before ``apple`` and accented words after ``zebra``. There the
    text is case-folded and stripped of accents instead.
    """
    if _is_codepoint_collation():
        decomposed = unicodedata.normalize("NFKD", text.casefold())
        return "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return locale.strxfrm(text)


def _locale_key(note: Note) -> str:
    return collation_key(note.sort_key)


class Note:
    """A tree node: a path segment, optionally backed by a stored file.

    Title and description are read through the *currently configured* key
    names on every access, so changing ``title_key`` takes effect without
    rebuilding the note.
    """

    def __init__(self, original_name: str, titlecase: bool, settings: Settings) -> None:
        self.original_name = original_name
        self.name = original_name.lower()
        self.titlecase = titlecase
        self.children: list[Note] = []
        self.parent: Note | None = None
        self.file: StoredFile | None = None
        self.metadata: NoteMetadata = {}
        self.sort_key = ""
        self._settings = settings
        self.sync_metadata(None)

    def __repr__(self) -> str:
        return f"Note({self.get_path(original=True)!r})"

    # --- Children ---

    def append_child(self, note: Note) -> None:
        if note.parent is not None:
            raise NoteHasParentError(note)
        note.parent = self
        self.children.append(note)

    def remove_child(self, note: Note) -> None:
        """Detach *note*; a note that is not a child is left alone."""
        try:
            self.children.remove(note)
        except ValueError:
            return
        note.parent = None

    def find_child(self, name: str) -> Note | None:
        lower = name.lower()
        for child in self.children:
            if child.name == lower:
                return child
        return None

    def sort_children(self, recursive: bool) -> None:
        self.children.sort(key=_locale_key)
        if recursive:
            for child in self.children:
                child.sort_children(recursive)

    # --- Paths ---

    def get_path_notes(self) -> list[Note]:
        notes: list[Note] = []
        current: Note | None = self
        while current is not None:
            notes.append(current)
            current = current.parent
        notes.reverse()
        return notes

    def get_path(self, original: bool = False) -> str:
        separator = self._settings.tree.hierarchy_separator
        notes = self.get_path_notes()
        if original:
            return join_original(notes, separator)
        return join_normalized(notes, separator)

    # --- Metadata ---

    def sync_metadata(self, metadata: NoteMetadata | None) -> None:
        """Replace metadata wholesale, filling in title and description."""
        title_key = self._settings.properties.title_key
        desc_key = self._settings.properties.desc_key

        self.metadata = dict(metadata) if metadata else {}
        if not self.metadata.get(title_key):
            self.metadata[title_key] = generate_note_title(self.original_name, self.titlecase)
        if self.metadata.get(desc_key) is None:
            self.metadata[desc_key] = ""
        self.sort_key = self.title.lower()

    @property
    def title(self) -> str:
        value = self.metadata.get(self._settings.properties.title_key)
        return str(value) if value else self.name

    @property
    def desc(self) -> str:
        value = self.metadata.get(self._settings.properties.desc_key)
        return str(value) if value else ""
