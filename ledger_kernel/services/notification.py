"""
ChangeChannel -- publish/subscribe fan-out of committed ledger changes.

Responsibility:
    Delivers ChangeEvents to subscribers (UI refresh, caches).  Subscribers
    register for the lifetime of a session and unsubscribe when it ends;
    the channel itself can be closed to drop every subscriber at once.

Architecture position:
    Kernel > Services.  The ReconciliationEngine publishes only after its
    transaction has committed.

Delivery contract:
    - Best effort, fire-and-forget: ``publish`` never raises into the
      publisher.  A failing subscriber is logged with its traceback and the
      remaining subscribers still receive the event.
    - With an ``executor``, delivery happens off the publishing thread.
    - Per subscriber, events are delivered in publish order when no
      executor is configured.
"""

import threading
from concurrent.futures import Executor
from typing import Callable, Iterable
from uuid import uuid4

from ledger_kernel.domain.events import ChangeEvent, EntityKind
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.notification")

Handler = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ChangeChannel.subscribe; usable as a context manager."""

    def __init__(
        self,
        channel: "ChangeChannel",
        handler: Handler,
        entity_kind: EntityKind | None = None,
        ledger: str | None = None,
    ):
        self.id = str(uuid4())
        self._channel = channel
        self.handler = handler
        self.entity_kind = EntityKind(entity_kind) if entity_kind is not None else None
        self.ledger = ledger
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if self.entity_kind is not None and event.entity_kind != self.entity_kind:
            return False
        if self.ledger is not None and event.ledger != self.ledger:
            return False
        return True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class ChangeChannel:
    """
    Explicit publish/subscribe channel with its own lifecycle.

    Usage:
        channel = ChangeChannel()
        with channel.subscribe(refresh_table, entity_kind="payment"):
            engine.create_payment(...)
        channel.close()
    """

    def __init__(self, executor: Executor | None = None):
        self._executor = executor
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(
        self,
        handler: Handler,
        entity_kind: EntityKind | str | None = None,
        ledger: str | None = None,
    ) -> Subscription:
        """Register a handler, optionally filtered by entity kind and ledger."""
        if self._closed:
            raise RuntimeError("Cannot subscribe to a closed ChangeChannel")
        subscription = Subscription(self, handler, entity_kind, ledger)
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        logger.debug(
            "subscriber_added",
            extra={"subscription_id": subscription.id, "ledger": ledger},
        )
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)
        logger.debug("subscriber_removed", extra={"subscription_id": subscription.id})

    def publish(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.matches(event)]
        for subscription in targets:
            if self._executor is not None:
                self._executor.submit(self._deliver, subscription, event)
            else:
                self._deliver(subscription, event)

    def publish_all(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            self.publish(event)

    def _deliver(self, subscription: Subscription, event: ChangeEvent) -> None:
        if not subscription.active:
            return
        try:
            subscription.handler(event)
        except Exception:
            logger.exception(
                "subscriber_failed",
                extra={
                    "subscription_id": subscription.id,
                    "entity_kind": event.entity_kind.value,
                    "operation": event.operation.value,
                    "ledger": event.ledger,
                },
            )

    def close(self) -> None:
        """Drop every subscriber; later publishes are ignored."""
        with self._lock:
            for subscription in self._subscriptions.values():
                subscription.active = False
            self._subscriptions.clear()
            self._closed = True
        logger.debug("channel_closed")
