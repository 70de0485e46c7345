"""Tree engine: notes, trees, vaults, and cross-vault reference resolution."""

from structuredtree.engine.note import Note, NoteHasParentError, generate_note_title
from structuredtree.engine.ref import FileRef, MaybeNoteRef, RefSubpath, parse_ref_subpath
from structuredtree.engine.renamer import NoteRenamer
from structuredtree.engine.tree import NoteTree
from structuredtree.engine.vault import StructuredVault
from structuredtree.engine.workspace import StructuredWorkspace

__all__ = [
    "FileRef",
    "MaybeNoteRef",
    "Note",
    "NoteHasParentError",
    "NoteRenamer",
    "NoteTree",
    "RefSubpath",
    "StructuredVault",
    "StructuredWorkspace",
    "generate_note_title",
    "parse_ref_subpath",
]
