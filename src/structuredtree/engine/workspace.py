"""StructuredWorkspace: every configured vault, and link resolution across them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from structuredtree.config import normalize_folder_path
from structuredtree.engine.ref import (
    STRUCTURED_URI_START,
    FileRef,
    MaybeNoteRef,
    parse_linktext,
    parse_ref_subpath,
)
from structuredtree.engine.vault import StructuredVault
from structuredtree.store import join_store_path, parse_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from structuredtree.config import Settings, VaultConfig
    from structuredtree.engine.note import Note
    from structuredtree.engine.ref import RefTarget
    from structuredtree.store import FileStore, MetadataProvider, StoredFile

logger = logging.getLogger(__name__)


class StructuredWorkspace:
    """Owns the vault list and resolves links against it.

    The vault list is only ever replaced wholesale (``change_vault``); vaults
    are never added or removed one by one.
    """

    def __init__(
        self,
        settings: Settings,
        store: FileStore,
        metadata: MetadataProvider,
        on_invalid_root: Callable[[StructuredVault], None] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.metadata = metadata
        self.on_invalid_root = on_invalid_root
        self.vault_list: list[StructuredVault] = []

    def change_vault(self, configs: list[VaultConfig]) -> None:
        """Replace every vault with fresh ones built from *configs*."""
        self.vault_list = [
            StructuredVault(config, self.settings, self.store, self.metadata, self.on_invalid_root)
            for config in configs
        ]
        for vault in self.vault_list:
            vault.init()
        logger.info("Workspace rebuilt with %d vaults", len(self.vault_list))

    # ------------------------------------------------------------------
    # Vault lookup
    # ------------------------------------------------------------------

    def find_vault_by_name(self, name: str) -> StructuredVault | None:
        for vault in self.vault_list:
            if vault.config.name == name:
                return vault
        return None

    def find_vault_by_parent_path(self, path: str) -> StructuredVault | None:
        """Vault whose root folder is exactly the store folder *path*."""
        folder = normalize_folder_path(path)
        for vault in self.vault_list:
            if vault.folder is not None and vault.folder.path == folder:
                return vault
        return None

    def find_vault_of_file(self, file: StoredFile) -> StructuredVault | None:
        return self.find_vault_by_parent_path(file.parent_path)

    def find_note(self, file: StoredFile) -> tuple[StructuredVault, Note] | None:
        vault = self.find_vault_of_file(file)
        if vault is None:
            return None
        note = vault.get_note(file.basename)
        if note is None:
            return None
        return vault, note

    def find_parent_note(self, file: StoredFile) -> Note | None:
        """Parent of *file*'s note, ``None`` at the top level or outside any vault."""
        found = self.find_note(file)
        if found is None:
            return None
        vault, note = found
        parent = note.parent
        if parent is None or parent is vault.tree.root:
            return None
        return parent

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def resolve_ref(self, source_path: str, link: str) -> RefTarget | None:
        """Resolve *link*, written in the file at *source_path*.

        ``structured://<vault>/<path>#<subpath>`` links name their vault and
        resolve the same way from anywhere. Other links resolve inside the
        vault that owns the linking file; ``None`` when there is no such vault.
        """
        if link.startswith(STRUCTURED_URI_START):
            return self._resolve_qualified(link[len(STRUCTURED_URI_START) :])

        vault = self.find_vault_by_parent_path(parse_path(source_path).dir)
        if vault is None:
            return None

        link_path, subpath = parse_linktext(link)
        target = self.metadata.resolve_link_destination(link_path, source_path)
        if target is not None and target.extension != self.settings.tree.note_extension:
            return FileRef(file=target)

        path = target.basename if target is not None else link_path
        return MaybeNoteRef(
            vault_name=vault.config.name,
            vault=vault,
            note=vault.get_note(path),
            path=path,
            subpath=parse_ref_subpath(subpath),
        )

    def _resolve_qualified(self, rest: str) -> MaybeNoteRef:
        vault_name, _, inner = rest.partition("/")
        path, subpath = parse_linktext(inner) if inner else ("", "")
        vault = self.find_vault_by_name(vault_name)
        if vault is None:
            logger.debug("Link names unknown vault %r", vault_name)

        return MaybeNoteRef(
            vault_name=vault_name,
            vault=vault,
            note=vault.get_note(path) if vault is not None and path else None,
            path=path,
            subpath=parse_ref_subpath(subpath),
        )

    # ------------------------------------------------------------------
    # Cross-vault operations
    # ------------------------------------------------------------------

    def move_note(self, file: StoredFile, target: StructuredVault) -> StoredFile:
        """Move *file* into *target*'s root folder.

        The trees follow through the store's rename event.
        """
        if target.folder is None:
            raise ValueError(f"Vault {target.config.name} has no root folder")
        return self.store.rename_file(file, join_store_path(target.folder.path, file.name))
