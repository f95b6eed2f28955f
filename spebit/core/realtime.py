# spebit/core/realtime.py
"""
Row change notifications.

Controllers publish a ``ChangeEvent`` after they commit a write; subscribers
register a callback filtered by table, event type and, optionally, one row id.
The hub also owns the websocket ``ConnectionManager`` used for per-user and
per-admin notifications. One hub is created by the application and shared
through ``app.state``; it only sees changes published inside this process.
"""
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Request

from spebit.core.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass
class ChangeEvent:
    table: str
    event: str
    row_id: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: str(datetime.now(timezone.utc)))


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


@dataclass
class Subscription:
    subscription_id: int
    table: str
    event: str
    callback: ChangeCallback
    row_id: Optional[str] = None

    def matches(self, change: ChangeEvent) -> bool:
        if self.table != change.table:
            return False
        if self.event != "*" and self.event != change.event:
            return False
        return self.row_id is None or self.row_id == change.row_id


class RealtimeHub:
    def __init__(self, connections: Optional[ConnectionManager] = None):
        self.connections = connections or ConnectionManager()
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        table: str,
        event: str,
        callback: ChangeCallback,
        row_id: Optional[str] = None,
    ) -> Subscription:
        subscription = Subscription(next(self._ids), table, event, callback, row_id)
        self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.subscription_id, None)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, change: ChangeEvent) -> None:
        # Copy: callbacks may unsubscribe while we iterate
        for subscription in list(self._subscriptions.values()):
            if not subscription.matches(change):
                continue
            try:
                await subscription.callback(change)
            except Exception as e:
                logger.error(
                    f"Subscriber {subscription.subscription_id} failed on "
                    f"{change.table}:{change.event}:{change.row_id}: {e}"
                )

    async def publish_change(
        self,
        table: str,
        event: str,
        row_id: str,
        new: Optional[Dict[str, Any]] = None,
        old: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.publish(ChangeEvent(table, event, row_id, new or {}, old or {}))


def get_realtime(request: Request) -> RealtimeHub:
    return request.app.state.realtime
