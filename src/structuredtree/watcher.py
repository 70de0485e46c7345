"""Store file watcher: turns filesystem changes into store events."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from structuredtree.store import FileCreated, FileDeleted, FileRenamed, MetadataResolved

if TYPE_CHECKING:
    from collections.abc import Callable

    from structuredtree.store import LocalFileStore, StoreEvent

logger = logging.getLogger(__name__)


class _StoreEventHandler(FileSystemEventHandler):
    """Maps watchdog events under the store root to store events."""

    def __init__(
        self,
        store: LocalFileStore,
        excluded_folders: list[str],
        on_event: Callable[[StoreEvent], None],
    ) -> None:
        self.store = store
        self.excluded = set(excluded_folders)
        self.on_event = on_event

    def _relative(self, path: str | bytes) -> str | None:
        """Store-relative path, ``None`` when outside the store or excluded."""
        p = Path(path.decode() if isinstance(path, bytes) else path)
        try:
            rel = p.resolve().relative_to(self.store.root)
        except ValueError:
            return None
        if any(part in self.excluded or part.startswith(".") for part in rel.parts[:-1]):
            return None
        return rel.as_posix()

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        rel = self._relative(event.src_path)
        file = self.store.get_file(rel) if rel else None
        if file is not None:
            logger.info("File created: %s", rel)
            self.on_event(FileCreated(file))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        rel = self._relative(event.src_path)
        file = self.store.get_file(rel) if rel else None
        if file is not None:
            logger.debug("File modified: %s", rel)
            self.on_event(MetadataResolved(file))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        rel = self._relative(event.src_path)
        if rel:
            logger.info("File deleted: %s", rel)
            self.on_event(FileDeleted(rel))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        old = self._relative(event.src_path)
        new = self._relative(event.dest_path)
        file = self.store.get_file(new) if new else None
        if file is None:
            if old:
                self.on_event(FileDeleted(old))
            return
        if old is None:
            self.on_event(FileCreated(file))
            return
        logger.info("File moved: %s -> %s", old, new)
        self.on_event(FileRenamed(file, old))


class VaultWatcher:
    """Watches the store root for file changes.

    Usage:
        watcher = VaultWatcher(store, settings.watch.excluded_folders, synchronizer.handle_event)
        watcher.start()  # non-blocking
        ...
        watcher.stop()
    """

    def __init__(
        self,
        store: LocalFileStore,
        excluded_folders: list[str],
        on_event: Callable[[StoreEvent], None],
    ) -> None:
        self.store = store
        self.handler = _StoreEventHandler(store, excluded_folders, on_event)
        self._observer: Observer | None = None

    def start(self) -> None:
        """Start watching the store directory (non-blocking)."""
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.store.root), recursive=True)
        self._observer.start()
        logger.info("Watching store at %s", self.store.root)

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Store watcher stopped")

    async def run_async(self) -> None:
        """Run the watcher in async context; blocks until cancelled."""
        self.start()
        try:
            while True:
                await asyncio.sleep(1)
        finally:
            self.stop()
