"""Ordered observer callbacks for state changes.

Observers are registered explicitly on an ``EventBus`` instance and invoked
synchronously, in registration order, after a mutation has been persisted.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

REALM_POST_CREATE = "realm.post_create"
REALM_PRE_REMOVE = "realm.pre_remove"
IDP_CREATED = "identity_provider.created"
IDP_UPDATED = "identity_provider.updated"
IDP_REMOVED = "identity_provider.removed"
FEDERATION_CREATED = "federation.created"
FEDERATION_SYNCED = "federation.synced"
FEDERATION_REMOVED = "federation.removed"


@dataclass(frozen=True)
class ChangeEvent:
    type: str
    realm_id: str
    resource_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


Observer = Callable[[ChangeEvent], None]


class EventBus:
    """Synchronous fan-out to an explicit, ordered list of observers."""

    def __init__(self, observers: Optional[list[Observer]] = None):
        self._observers: list[Observer] = list(observers or [])

    def register(self, observer: Observer) -> None:
        self._observers.append(observer)

    def publish(self, event: ChangeEvent) -> None:
        """Deliver ``event`` to every observer.

        Observer failures are logged and do not undo the mutation that
        triggered the event, nor stop delivery to the remaining observers.
        """
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as exc:
                logger.error("[events] Observer %r failed on %s: %s", observer, event.type, exc, exc_info=True)
