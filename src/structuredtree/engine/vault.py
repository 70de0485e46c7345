"""StructuredVault: one vault root folder bound to one note tree.

Translates store lifecycle events into tree mutations and owns the
file-type policy (which extensions count as notes). A vault whose root
folder is missing stays uninitialized and answers every query as if it
held no notes.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import TYPE_CHECKING, Any

import frontmatter

from structuredtree.config import EXPERIMENTAL_EXTENSIONS
from structuredtree.engine.tree import NoteTree
from structuredtree.store import StoredFile, join_store_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from structuredtree.config import PropertyConfig, Settings, VaultConfig
    from structuredtree.engine.note import Note, NoteMetadata
    from structuredtree.store import FileStore, MetadataProvider, ParsedPath, StoredFolder

logger = logging.getLogger(__name__)

ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
ID_LENGTH = 23


def generate_id() -> str:
    """Random 23-character lowercase alphanumeric note id."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


class StructuredVault:
    """Binds a ``NoteTree`` to one root folder of the store."""

    def __init__(
        self,
        config: VaultConfig,
        settings: Settings,
        store: FileStore,
        metadata: MetadataProvider,
        on_invalid_root: Callable[[StructuredVault], None] | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.store = store
        self.metadata = metadata
        self.on_invalid_root = on_invalid_root
        self.tree = NoteTree(settings)
        self.folder: StoredFolder | None = None
        self.is_initialized = False
        self.invalid_root = False
        self._accepted_extensions: frozenset[str] = frozenset()
        self.update_accepted_extensions_cache()

    def __repr__(self) -> str:
        return f"StructuredVault(name={self.config.name!r}, path={self.config.path!r})"

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def properties(self) -> PropertyConfig:
        return self.settings.properties_for(self.config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> bool:
        """Scan the root folder into the tree. Calling it again is a no-op."""
        if self.is_initialized:
            return True

        root = self.store.get_folder(self.config.path)
        if root is None:
            self.invalid_root = True
            logger.warning(
                "Vault %s: root folder '%s' does not exist", self.config.name, self.config.path
            )
            if self.on_invalid_root is not None:
                self.on_invalid_root(self)
            return False

        self.folder = root
        self.invalid_root = False

        count = 0
        for child in self.store.list_children(root.path):
            if isinstance(child, StoredFile) and self.is_note(child.extension):
                self.tree.add_file(child).sync_metadata(self.resolve_metadata(child))
                count += 1

        self.tree.sort()
        self.is_initialized = True
        logger.info("Vault %s: indexed %d files", self.config.name, count)
        return True

    def create_root_folder(self) -> StoredFolder:
        return self.store.create_folder(self.config.path)

    # ------------------------------------------------------------------
    # File-type policy
    # ------------------------------------------------------------------

    def update_accepted_extensions_cache(self) -> None:
        """Recompute the accepted extensions. Call after any settings change."""
        extensions = set(self.settings.tree.accepted_extensions)
        extensions.add(self.settings.tree.note_extension)
        if self.settings.tree.enable_canvas_support:
            extensions.update(EXPERIMENTAL_EXTENSIONS)
        self._accepted_extensions = frozenset(extensions)

    @property
    def accepted_extensions(self) -> frozenset[str]:
        return self._accepted_extensions

    def is_note(self, extension: str) -> bool:
        return extension in self._accepted_extensions

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve_metadata(self, file: StoredFile) -> NoteMetadata | None:
        return self.metadata.get_structured_frontmatter(file)

    def get_note(self, name: str) -> Note | None:
        """Note at the dotted path *name*; nothing resolves before ``init``."""
        if not self.is_initialized:
            return None
        return self.tree.get_from_file_name(name)

    def contains_path(self, path: str) -> bool:
        """Whether the store path *path* lives inside this vault's root."""
        if self.folder is None:
            return False
        root = self.folder.path
        return not root or path == root or path.startswith(f"{root}/")

    def is_accessible_from(self, active_file: StoredFile | None) -> bool:
        """Secret vaults only show up while the active file lives inside them."""
        if not self.config.is_secret:
            return True
        return active_file is not None and self.contains_path(active_file.path)

    # ------------------------------------------------------------------
    # Store event handlers
    # ------------------------------------------------------------------

    def on_file_created(self, file: StoredFile) -> bool:
        if not self.is_initialized or not self.is_note(file.extension):
            return False

        note = self.tree.add_file(file, rebalance=True)
        note.sync_metadata(self.resolve_metadata(file))
        if note.parent is not None:
            note.parent.sort_children(False)
        logger.debug("Vault %s: created %s", self.config.name, note.get_path())
        return True

    def on_metadata_changed(self, file: StoredFile) -> bool:
        if not self.is_initialized or not self.is_note(file.extension):
            return False

        note = self.tree.get_from_file_name(file.basename)
        if note is None:
            return False

        note.sync_metadata(self.resolve_metadata(file))
        if note.parent is not None:
            note.parent.sort_children(False)
        return True

    def on_file_deleted(self, parsed: ParsedPath) -> bool:
        if not self.is_initialized or not self.is_note(parsed.extension):
            return False

        note = self.tree.delete_by_file_name(parsed.basename)
        # Still attached means it kept children: reset it to a virtual note
        if note is not None and note.parent is not None:
            note.sync_metadata(None)
            note.parent.sort_children(False)
        logger.debug("Vault %s: deleted %s", self.config.name, parsed.basename)
        return True

    # ------------------------------------------------------------------
    # Store writes
    # ------------------------------------------------------------------

    def create_note(self, base_name: str) -> StoredFile:
        """Create an empty note file for the dotted path *base_name*.

        The tree picks the file up from the store's created event, never
        before the file exists.
        """
        filename = f"{base_name}.{self.settings.tree.note_extension}"
        return self.store.create_file(join_store_path(self.config.path, filename), "")

    def generate_frontmatter(self, file: StoredFile) -> bool:
        """Fill in the front-matter properties the effective policy asks for.

        Returns ``False`` when the file is not a note of this vault.
        """
        if file.extension != self.settings.tree.note_extension:
            return False
        note = self.tree.get_from_file_name(file.basename)
        if note is None:
            return False

        props = self.properties
        if not props.auto_generate:
            return False

        post = frontmatter.loads(self.store.read_content(file))
        meta: dict[str, Any] = post.metadata
        before = dict(meta)

        if props.generate_id and not meta.get(props.id_key):
            meta[props.id_key] = generate_id()
        if props.generate_title and not meta.get(props.title_key):
            meta[props.title_key] = note.title
        if props.generate_desc and meta.get(props.desc_key) is None:
            meta[props.desc_key] = note.desc
        if props.generate_created and not meta.get(props.created_key):
            if props.created_format == "unix":
                meta[props.created_key] = file.stat.ctime
            else:
                created = datetime.fromtimestamp(file.stat.ctime / 1000)
                meta[props.created_key] = created.strftime("%Y-%m-%d")
        if props.generate_tags and "tags" not in meta:
            meta["tags"] = []

        if meta == before:
            return True
        self.store.write_content(file, frontmatter.dumps(post, sort_keys=False) + "\n")
        logger.info("Vault %s: generated properties for %s", self.config.name, file.path)
        return True

    def generate_id(self, file: StoredFile) -> str | None:
        """Add an id property to *file*; ``None`` if it already has one."""
        id_key = self.properties.id_key
        post = frontmatter.loads(self.store.read_content(file))
        if post.metadata.get(id_key):
            return None

        new_id = generate_id()
        # Id goes first in the front-matter block
        post.metadata = {id_key: new_id, **post.metadata}
        self.store.write_content(file, frontmatter.dumps(post, sort_keys=False) + "\n")
        return new_id
