"""Tree synchronizer: the single writer that applies store events to vault trees.

Store listeners and the filesystem watcher may fire from any thread. They
hand events to :meth:`TreeSynchronizer.handle_event`, which only enqueues.
:meth:`TreeSynchronizer.run` drains the queue on the event loop and applies
one event at a time, so tree mutations never interleave.

A rename is applied as a delete on the old vault followed by a create on
the new vault; the delete is committed first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from structuredtree.events import TreeChangedEvent, WorkspaceEventBus
from structuredtree.store import (
    FileCreated,
    FileDeleted,
    FileRenamed,
    MetadataResolved,
    parse_path,
)

if TYPE_CHECKING:
    from structuredtree.engine.vault import StructuredVault
    from structuredtree.engine.workspace import StructuredWorkspace
    from structuredtree.store import StoredFile, StoreEvent

logger = logging.getLogger(__name__)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class TreeSynchronizer:
    """Routes store events into the owning vault's handlers.

    Usage (synchronous, e.g. one-shot CLI commands):
        store.subscribe(synchronizer.apply)

    Usage (long-running, e.g. ``watch``):
        store.subscribe(synchronizer.handle_event)
        task = asyncio.create_task(synchronizer.run())
    """

    def __init__(
        self,
        workspace: StructuredWorkspace,
        event_bus: WorkspaceEventBus | None = None,
        debounce_ms: int = 0,
    ) -> None:
        self._workspace = workspace
        self._event_bus = event_bus or WorkspaceEventBus()
        self._debounce_s = debounce_ms / 1000.0
        self._queue: asyncio.Queue[StoreEvent | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None

        # Debounce state: path -> scheduled metadata refresh
        self._pending: dict[str, asyncio.TimerHandle] = {}

    @property
    def event_bus(self) -> WorkspaceEventBus:
        return self._event_bus

    @property
    def pending_count(self) -> int:
        """Events queued or awaiting debounce, not yet applied."""
        return self._queue.qsize() + len(self._pending)

    # ------------------------------------------------------------------
    # Synchronous routing
    # ------------------------------------------------------------------

    def apply(self, event: StoreEvent) -> bool:
        """Apply *event* to the owning vault(s). Returns whether any tree changed."""
        return bool(self._route(event))

    def _route(self, event: StoreEvent) -> list[StructuredVault]:
        match event:
            case FileCreated(file=file):
                return self._created(file)
            case FileDeleted(path=path):
                return self._deleted(path)
            case FileRenamed(file=file, old_path=old_path):
                changed = self._deleted(old_path)
                changed.extend(v for v in self._created(file) if v not in changed)
                return changed
            case MetadataResolved(file=file):
                vault = self._workspace.find_vault_of_file(file)
                if vault is not None and vault.on_metadata_changed(file):
                    return [vault]
                return []
        logger.warning("Ignoring unknown store event %r", event)
        return []

    def _created(self, file: StoredFile) -> list[StructuredVault]:
        vault = self._workspace.find_vault_of_file(file)
        if vault is not None and vault.on_file_created(file):
            return [vault]
        return []

    def _deleted(self, path: str) -> list[StructuredVault]:
        parsed = parse_path(path)
        vault = self._workspace.find_vault_by_parent_path(parsed.dir)
        if vault is not None and vault.on_file_deleted(parsed):
            return [vault]
        return []

    # ------------------------------------------------------------------
    # Queued, single-writer processing
    # ------------------------------------------------------------------

    def handle_event(self, event: StoreEvent) -> None:
        """Enqueue *event* for :meth:`run`. Safe to call from any thread.

        Metadata refreshes are debounced per path when ``debounce_ms`` is set.
        """
        if self._loop is None:
            self._queue.put_nowait(event)
        elif _running_loop() is self._loop:
            self._enqueue(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: StoreEvent | None) -> None:
        if not isinstance(event, MetadataResolved) or self._debounce_s <= 0:
            self._queue.put_nowait(event)
            return

        path = event.file.path
        if path in self._pending:
            self._pending[path].cancel()

        def _flush(e: MetadataResolved = event) -> None:
            self._pending.pop(e.file.path, None)
            self._queue.put_nowait(e)

        assert self._loop is not None
        self._pending[path] = self._loop.call_later(self._debounce_s, _flush)

    def stop(self) -> None:
        """Ask :meth:`run` to return once the events queued so far are applied."""
        self.handle_event(None)  # type: ignore[arg-type]

    async def join(self) -> None:
        """Wait until every queued event has been applied."""
        await self._queue.join()

    async def run(self) -> None:
        """Apply queued events until :meth:`stop` is called or the task is cancelled."""
        self._loop = asyncio.get_running_loop()
        logger.info("Tree synchronizer started")
        try:
            while True:
                event = await self._queue.get()
                try:
                    if event is None:
                        break
                    await self._process(event)
                finally:
                    self._queue.task_done()
        finally:
            for handle in self._pending.values():
                handle.cancel()
            self._pending.clear()
            self._loop = None
            logger.info("Tree synchronizer stopped")

    async def _process(self, event: StoreEvent) -> None:
        try:
            changed = self._route(event)
        except Exception:
            logger.exception("Failed to apply %s", type(event).__name__)
            return

        if isinstance(event, FileCreated):
            await self._generate_properties(event.file, changed)

        if changed:
            names = tuple(vault.name for vault in changed)
            logger.debug("Trees changed: %s", ", ".join(names))
            await self._event_bus.publish(TreeChangedEvent(vault_names=names))

    async def _generate_properties(
        self, file: StoredFile, changed: list[StructuredVault]
    ) -> None:
        """Fill in front-matter for a freshly created, still empty note."""
        if file.stat.size != 0:
            return
        for vault in changed:
            if not vault.properties.auto_generate:
                continue
            try:
                await asyncio.to_thread(vault.generate_frontmatter, file)
            except OSError:
                logger.exception("Failed to generate properties for %s", file.path)
