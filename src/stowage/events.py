"""EventBus and event types for drive activity notifications."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of drive mutations observers can subscribe to."""

    RESOURCE_CREATED = "resource_created"
    RESOURCE_TRASHED = "resource_trashed"
    RESOURCE_RESTORED = "resource_restored"
    RESOURCE_PURGED = "resource_purged"
    RESOURCE_MOVED = "resource_moved"
    RESOURCE_RENAMED = "resource_renamed"
    SHARE_GRANTED = "share_granted"
    SHARE_REVOKED = "share_revoked"


@dataclass(frozen=True, slots=True)
class ResourceEvent:
    """Immutable record of a committed drive mutation.

    Attributes:
        event_type: The kind of mutation that occurred.
        resource_id: Id of the affected folder or file (owner id for empty trash).
        resource_type: ``"file"``, ``"folder"``, or ``None`` when mixed.
        actor_id: User who performed the mutation.
        detail: Extra operation-specific values (new name, destination, counts).
    """

    event_type: EventType
    resource_id: str
    resource_type: str | None = None
    actor_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """Fans committed drive mutations out to observers.

    ``DriveAsync`` emits only after the mutation's session has
    committed, so observers never see a change that was rolled back.
    Observers may be plain callables or coroutine functions; they run
    one after another in subscription order.  An observer that raises
    is logged and skipped, and the remaining observers still run.
    """

    def __init__(self) -> None:
        self._observers: dict[EventType, list[Callable[..., Any]]] = {
            event_type: [] for event_type in EventType
        }

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Subscribe *handler* to one kind of drive mutation."""
        self._observers[event_type].append(handler)

    def register_all(self, handler: Callable[..., Any]) -> None:
        """Subscribe *handler* to every kind of drive mutation."""
        for observers in self._observers.values():
            observers.append(handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Drop one subscription of *handler*.  False if it was not subscribed."""
        observers = self._observers[event_type]
        if handler not in observers:
            return False
        observers.remove(handler)
        return True

    async def emit(self, event: ResourceEvent) -> None:
        """Notify every observer of *event*'s kind."""
        for handler in list(self._observers[event.event_type]):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.warning(
                    "Observer %r failed on %s of %s %s by %s",
                    handler,
                    event.event_type.value,
                    event.resource_type or "resources",
                    event.resource_id,
                    event.actor_id,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Number of subscriptions across all mutation kinds."""
        return sum(len(observers) for observers in self._observers.values())

    def clear(self) -> None:
        """Drop every subscription."""
        for observers in self._observers.values():
            observers.clear()
