"""Typed workspace events and an async bus for change propagation.

Downstream consumers (lookup caches, graph exports) subscribe to tree
changes without coupling to the synchronizer that applies them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from time import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TreeChangedEvent:
    """One or more vault trees changed after a store event was applied."""

    vault_names: tuple[str, ...]
    timestamp: float = field(default_factory=time)


type AnyWorkspaceEvent = TreeChangedEvent

# Callback signature: async fn(event) -> None
type EventCallback = Callable[[AnyWorkspaceEvent], Coroutine[Any, Any, None]]


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class WorkspaceEventBus:
    """Async publish/subscribe bus for workspace change events.

    Publishing dispatches to every subscriber of the event's type
    concurrently. Subscriber errors are logged and do not propagate.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type[AnyWorkspaceEvent], list[EventCallback]] = {}

    def subscribe(self, event_type: type[AnyWorkspaceEvent], callback: EventCallback) -> None:
        self._subscribers.setdefault(event_type, []).append(callback)
        logger.debug("Subscriber registered: %s -> %s", event_type.__name__, callback.__qualname__)

    def unsubscribe(self, event_type: type[AnyWorkspaceEvent], callback: EventCallback) -> None:
        subs = self._subscribers.get(event_type, [])
        with contextlib.suppress(ValueError):
            subs.remove(callback)

    async def publish(self, event: AnyWorkspaceEvent) -> None:
        subs = self._subscribers.get(type(event), [])
        if not subs:
            return

        async def _safe_call(cb: EventCallback) -> None:
            try:
                await cb(event)
            except Exception:
                logger.exception(
                    "Subscriber %s failed on %s", cb.__qualname__, type(event).__name__
                )

        await asyncio.gather(*[_safe_call(cb) for cb in subs])

    @property
    def subscriber_count(self) -> int:
        return sum(len(v) for v in self._subscribers.values())
