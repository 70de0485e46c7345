"""Dotted-path codec: note identifiers to segments and back."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from structuredtree.engine.note import Note

ROOT_NAME = "root"


def segments_of(basename: str, separator: str = ".") -> list[str]:
    """Split a note identifier into its hierarchy segments."""
    return basename.split(separator)


def is_root_path(segments: Sequence[str]) -> bool:
    """A single ``root`` segment (any case) addresses the tree root itself."""
    return len(segments) == 1 and segments[0].lower() == ROOT_NAME


def join_original(notes: Sequence[Note], separator: str = ".") -> str:
    """Dotted path of an ancestor chain using each segment's original casing."""
    return _join(notes, separator, original=True)


def join_normalized(notes: Sequence[Note], separator: str = ".") -> str:
    """Dotted path of an ancestor chain using lowercase segment names."""
    return _join(notes, separator, original=False)


def _join(notes: Sequence[Note], separator: str, *, original: bool) -> str:
    if len(notes) == 1:
        return notes[0].original_name if original else notes[0].name

    component: list[str] = []
    for note in notes:
        # The synthetic root never appears in a multi-segment path
        if note.parent is None and note.name == ROOT_NAME:
            continue
        component.append(note.original_name if original else note.name)
    return separator.join(component)

