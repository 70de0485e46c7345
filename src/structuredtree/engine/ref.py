"""Reference targets and link-text parsing.

A link is ``path#subpath``. The subpath selects an anchor inside the target
note: ``#Heading``, ``#^block-id``, or a range ``#start:#end``. Anchors are
attached to the resolved target for section extraction; they play no part
in path resolution.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Sequence

    from structuredtree.engine.note import Note
    from structuredtree.engine.vault import StructuredVault
    from structuredtree.store import Heading, StoredFile

STRUCTURED_URI_START = "structured://"

_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_SPACE = re.compile(r"[\s_-]+")


@dataclass(frozen=True, slots=True)
class RefAnchor:
    type: Literal["header", "block"]
    name: str


@dataclass(frozen=True, slots=True)
class RefSubpath:
    text: str
    start: RefAnchor
    end: RefAnchor | None = None


@dataclass(slots=True)
class MaybeNoteRef:
    """A note reference resolved syntactically; vault and note may be missing."""

    vault_name: str
    path: str
    vault: StructuredVault | None = None
    note: Note | None = None
    subpath: RefSubpath | None = None
    type: Literal["maybe-note"] = "maybe-note"


@dataclass(slots=True)
class FileRef:
    """A plain file (attachment) reference, passed through untouched."""

    file: StoredFile
    type: Literal["file"] = "file"


type RefTarget = MaybeNoteRef | FileRef


def parse_linktext(link: str) -> tuple[str, str]:
    """Split ``path#subpath`` into ``(path, subpath)``; the subpath keeps no ``#``."""
    path, _, subpath = link.partition("#")
    return path.strip(), subpath.strip()


def _parse_anchor(text: str) -> RefAnchor | None:
    text = text.strip().removeprefix("#")
    if not text:
        return None
    if text.startswith("^"):
        name = text[1:]
        return RefAnchor("block", name) if name else None
    return RefAnchor("header", text)


def parse_ref_subpath(subpath: str) -> RefSubpath | None:
    """Parse ``Heading``, ``^block`` or ``start:#end`` (without the leading ``#``)."""
    subpath = subpath.strip().removeprefix("#")
    if not subpath:
        return None

    start_text, sep, end_text = subpath.partition(":")
    start = _parse_anchor(start_text)
    if start is None:
        return None
    end = _parse_anchor(end_text) if sep else None
    return RefSubpath(text=subpath, start=start, end=end)


def slugify(text: str) -> str:
    """Heading slug used for case- and punctuation-insensitive anchor matching."""
    return _SLUG_SPACE.sub("-", _SLUG_STRIP.sub("", text.lower())).strip("-")


def find_heading(anchor: RefAnchor, headings: Sequence[Heading]) -> Heading | None:
    if anchor.type != "header":
        return None
    wanted = slugify(anchor.name)
    for heading in headings:
        if heading.text == anchor.name or slugify(heading.text) == wanted:
            return heading
    return None


def anchor_to_link_subpath(anchor: RefAnchor, headings: Sequence[Heading] | None) -> str:
    """Link subpath (``#Heading`` or ``#^block``) for *anchor* in a real file."""
    if anchor.type == "block":
        return f"#^{anchor.name}"
    heading = find_heading(anchor, headings or [])
    return f"#{heading.text if heading else anchor.name}"


def extract_section(content: str, subpath: RefSubpath, headings: Sequence[Heading]) -> str | None:
    """Lines of the section *subpath* selects, ``None`` when it cannot be found.

    A heading section runs until the next heading of the same or higher
    level. A range ends where its end heading's section ends. Block anchors
    select the single line carrying ``^block-id``.
    """
    lines = content.split("\n")

    if subpath.start.type == "block":
        marker = f"^{subpath.start.name}"
        for line in lines:
            if line.rstrip().endswith(marker):
                return line
        return None

    start = find_heading(subpath.start, headings)
    if start is None:
        return None

    last = start
    if subpath.end is not None:
        end = find_heading(subpath.end, headings)
        if end is None or end.line < start.line:
            return None
        last = end

    stop = len(lines)
    for heading in headings:
        if heading.line > last.line and heading.level <= last.level:
            stop = heading.line
            break
    return "\n".join(lines[start.line : stop])
