"""File store and metadata provider: the collaborators the tree engine consumes.

The engine only sees the ``FileStore`` and ``MetadataProvider`` protocols.
``LocalFileStore`` and ``FrontmatterMetadataProvider`` implement them over a
directory on disk, with store-relative POSIX paths (``""`` is the store
root). Mutating store operations notify subscribed listeners *after* the
I/O succeeds, so the tree never changes ahead of the disk.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import frontmatter

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

# Heading pattern: matches ## Heading but not code blocks
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedPath:
    """Pieces of a store-relative file path (``dir/basename.extension``)."""

    dir: str
    name: str
    basename: str
    extension: str


def parse_path(path: str) -> ParsedPath:
    """Split ``a/b/abc.def.md`` into dir ``a/b``, basename ``abc.def``, extension ``md``."""
    path = path.strip("/")
    dir_, _, name = path.rpartition("/")
    basename, dot, extension = name.rpartition(".")
    if not dot or not basename:
        # No extension (or a dotfile such as ``.hidden``)
        basename, extension = name, ""
    return ParsedPath(dir=dir_, name=name, basename=basename, extension=extension)


def join_store_path(folder: str, name: str) -> str:
    """Join a store-relative folder and a file name (``""`` folder is the root)."""
    return f"{folder}/{name}" if folder else name


class StorePathError(ValueError):
    """Raised when a store-relative path escapes the store root."""

    def __init__(self, store_path: str, store_root: Path) -> None:
        self.store_path = store_path
        self.store_root = store_root
        super().__init__(f"Path '{store_path}' escapes store root '{store_root}'")


def resolve_store_path(store_path: str, store_root: Path) -> Path:
    """Absolute location of *store_path* under *store_root*.

    Backslashes count as separators and a leading slash is the store root,
    so ``\\notes\\abc.md`` and ``/notes/abc.md`` both land on ``notes/abc.md``.
    Symlinks are followed before the containment check.

    Raises:
        StorePathError: if the resolved path is outside *store_root*.
    """
    root = store_root.resolve()
    relative = store_path.replace("\\", "/").lstrip("/")
    candidate = (root / relative).resolve()
    if not candidate.is_relative_to(root):
        raise StorePathError(store_path, store_root)
    return candidate


# ---------------------------------------------------------------------------
# Handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileStat:
    """Timestamps in milliseconds since the epoch, size in bytes."""

    ctime: int = 0
    mtime: int = 0
    size: int = 0


@dataclass(frozen=True, slots=True)
class StoredFile:
    """A file in the store, addressed by its store-relative path."""

    path: str
    stat: FileStat = field(default_factory=FileStat, compare=False)

    @property
    def name(self) -> str:
        return parse_path(self.path).name

    @property
    def basename(self) -> str:
        return parse_path(self.path).basename

    @property
    def extension(self) -> str:
        return parse_path(self.path).extension

    @property
    def parent_path(self) -> str:
        return parse_path(self.path).dir


@dataclass(frozen=True, slots=True)
class StoredFolder:
    path: str

    @property
    def name(self) -> str:
        return parse_path(self.path).name


@dataclass(frozen=True, slots=True)
class Heading:
    level: int
    text: str
    line: int


# ---------------------------------------------------------------------------
# Change events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileCreated:
    file: StoredFile


@dataclass(frozen=True, slots=True)
class FileDeleted:
    """The file is gone; only its former path is known."""

    path: str


@dataclass(frozen=True, slots=True)
class FileRenamed:
    file: StoredFile
    old_path: str


@dataclass(frozen=True, slots=True)
class MetadataResolved:
    """Derived metadata (front-matter) for *file* is available or changed."""

    file: StoredFile


type StoreEvent = FileCreated | FileDeleted | FileRenamed | MetadataResolved
type StoreListener = Callable[[StoreEvent], None]


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class FileStore(Protocol):
    def get_file(self, path: str) -> StoredFile | None: ...

    def get_folder(self, path: str) -> StoredFolder | None: ...

    def list_children(self, folder_path: str) -> list[StoredFile | StoredFolder]: ...

    def iter_files(self) -> Iterator[StoredFile]: ...

    def read_content(self, file: StoredFile) -> str: ...

    def read_bytes(self, file: StoredFile) -> bytes: ...

    def write_content(self, file: StoredFile, text: str) -> StoredFile: ...

    def create_file(self, path: str, content: str = "") -> StoredFile: ...

    def create_folder(self, path: str) -> StoredFolder: ...

    def exists(self, path: str) -> bool: ...

    def rename_file(self, file: StoredFile, new_path: str) -> StoredFile: ...

    def subscribe(self, listener: StoreListener) -> None: ...


class MetadataProvider(Protocol):
    def get_structured_frontmatter(self, file: StoredFile) -> dict[str, Any] | None: ...

    def resolve_link_destination(self, link_path: str, from_path: str) -> StoredFile | None: ...

    def get_headings(self, file: StoredFile) -> list[Heading]: ...


# ---------------------------------------------------------------------------
# Local disk implementation
# ---------------------------------------------------------------------------


def _stat_of(path: Path) -> FileStat:
    st = path.stat()
    created = getattr(st, "st_birthtime", st.st_ctime)
    return FileStat(
        ctime=int(created * 1000),
        mtime=int(st.st_mtime * 1000),
        size=st.st_size,
    )


class LocalFileStore:
    """A directory on disk exposed through the ``FileStore`` protocol.

    Usage:
        store = LocalFileStore(Path("~/notes").expanduser())
        store.subscribe(synchronizer.apply)
        store.create_file("work/project.backend.md")
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._listeners: list[StoreListener] = []

    # --- Listeners ---

    def subscribe(self, listener: StoreListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Store listener failed on %s", type(event).__name__)

    # --- Paths ---

    def _abs(self, path: str) -> Path:
        return resolve_store_path(path, self.root)

    def relative(self, path: Path) -> str:
        """Store-relative path of an absolute filesystem path."""
        rel = path.resolve().relative_to(self.root).as_posix()
        return "" if rel == "." else rel

    def _file(self, path: Path) -> StoredFile:
        return StoredFile(path=self.relative(path), stat=_stat_of(path))

    # --- Queries ---

    def get_file(self, path: str) -> StoredFile | None:
        target = self._abs(path)
        if not target.is_file():
            return None
        return self._file(target)

    def get_folder(self, path: str) -> StoredFolder | None:
        target = self._abs(path)
        if not target.is_dir():
            return None
        return StoredFolder(path=self.relative(target))

    def list_children(self, folder_path: str) -> list[StoredFile | StoredFolder]:
        folder = self._abs(folder_path)
        children: list[StoredFile | StoredFolder] = []
        for entry in sorted(folder.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                children.append(StoredFolder(path=self.relative(entry)))
            elif entry.is_file():
                children.append(self._file(entry))
        return children

    def iter_files(self) -> Iterator[StoredFile]:
        """Every file in the store, hidden folders skipped."""
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                yield self._file(Path(dirpath) / filename)

    def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    def read_content(self, file: StoredFile) -> str:
        return self._abs(file.path).read_text(encoding="utf-8")

    def read_bytes(self, file: StoredFile) -> bytes:
        return self._abs(file.path).read_bytes()

    # --- Mutations ---

    def write_content(self, file: StoredFile, text: str) -> StoredFile:
        target = self._abs(file.path)
        target.write_text(text, encoding="utf-8")
        updated = self._file(target)
        self._notify(MetadataResolved(updated))
        return updated

    def create_file(self, path: str, content: str = "") -> StoredFile:
        target = self._abs(path)
        if target.exists():
            raise FileExistsError(f"File already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        created = self._file(target)
        logger.info("Created %s", created.path)
        self._notify(FileCreated(created))
        return created

    def create_folder(self, path: str) -> StoredFolder:
        target = self._abs(path)
        if target.exists():
            raise FileExistsError(f"Folder already exists: {path}")
        target.mkdir(parents=True)
        logger.info("Created folder %s", path)
        return StoredFolder(path=self.relative(target))

    def rename_file(self, file: StoredFile, new_path: str) -> StoredFile:
        source = self._abs(file.path)
        target = self._abs(new_path)
        if target.exists():
            raise FileExistsError(f"Destination already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        renamed = self._file(target)
        logger.info("Renamed %s -> %s", file.path, renamed.path)
        self._notify(FileRenamed(renamed, file.path))
        return renamed

    def delete_file(self, file: StoredFile) -> None:
        self._abs(file.path).unlink()
        logger.info("Deleted %s", file.path)
        self._notify(FileDeleted(file.path))


# ---------------------------------------------------------------------------
# Front-matter metadata
# ---------------------------------------------------------------------------


class FrontmatterMetadataProvider:
    """Reads YAML front-matter and headings with python-frontmatter."""

    def __init__(self, store: FileStore, note_extension: str = "md") -> None:
        self.store = store
        self.note_extension = note_extension

    def _read(self, file: StoredFile) -> str | None:
        try:
            return self.store.read_content(file)
        except (FileNotFoundError, UnicodeDecodeError):
            logger.debug("Cannot read %s", file.path)
            return None

    def get_structured_frontmatter(self, file: StoredFile) -> dict[str, Any] | None:
        """Front-matter mapping, ``None`` when the file has no front-matter block."""
        if file.extension != self.note_extension:
            return None
        text = self._read(file)
        if text is None or not frontmatter.checks(text):
            return None
        try:
            post = frontmatter.loads(text)
        except Exception:
            logger.warning("Malformed front-matter in %s", file.path)
            return None
        return dict(post.metadata)

    def get_headings(self, file: StoredFile) -> list[Heading]:
        text = self._read(file)
        if text is None:
            return []
        headings: list[Heading] = []
        in_fence = False
        for idx, line in enumerate(text.splitlines()):
            if FENCE_PATTERN.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            match = HEADING_PATTERN.match(line)
            if match:
                headings.append(Heading(len(match.group(1)), match.group(2), idx))
        return headings

    def resolve_link_destination(self, link_path: str, from_path: str) -> StoredFile | None:
        """Best-effort file for *link_path* as written in the file at *from_path*.

        Tries the exact store path, then the linking file's folder, then the
        shortest matching path anywhere in the store. A link without a known
        file also tries the note extension appended.
        """
        link_path = link_path.strip()
        if not link_path:
            return self.store.get_file(from_path)

        source_dir = parse_path(from_path).dir
        candidates = [link_path, f"{link_path}.{self.note_extension}"]

        for candidate in candidates:
            for path in (candidate, join_store_path(source_dir, candidate)):
                try:
                    found = self.store.get_file(path)
                except StorePathError:
                    logger.debug("Link %r escapes the store", link_path)
                    return None
                if found is not None:
                    return found

        lowered = [c.lower() for c in candidates]
        best: StoredFile | None = None
        for file in self.store.iter_files():
            path = file.path.lower()
            if any(path == c or path.endswith(f"/{c}") for c in lowered):
                if best is None or len(file.path) < len(best.path):
                    best = file
        return best
