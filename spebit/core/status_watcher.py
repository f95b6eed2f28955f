# spebit/core/status_watcher.py
"""
Watches one transaction while its owner waits for the admin decision.

The watcher subscribes to UPDATE events for a single Transactions row. The
first ``approved`` or ``rejected`` status runs the matching action; anything
else is ignored. It runs at most one terminal action and always releases its
subscription, whether it finishes, times out or is closed early.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from spebit.core.realtime import UPDATE, ChangeEvent, RealtimeHub, Subscription

logger = logging.getLogger(__name__)

APPROVED = "approved"
REJECTED = "rejected"
TIMEOUT = "timeout"
CLOSED = "closed"

RowCallback = Callable[[Dict[str, Any]], Awaitable[None]]


class TransactionStatusWatcher:
    def __init__(
        self,
        hub: RealtimeHub,
        transaction_id: str,
        on_approved: RowCallback,
        on_rejected: RowCallback,
        on_timeout: Optional[Callable[[], Awaitable[None]]] = None,
        timeout: float = 120,
        table: str = "Transactions",
    ):
        self.hub = hub
        self.transaction_id = transaction_id
        self.on_approved = on_approved
        self.on_rejected = on_rejected
        self.on_timeout = on_timeout
        self.timeout = timeout
        self.table = table
        self.outcome: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._finished = asyncio.Event()

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def start(self) -> "TransactionStatusWatcher":
        if self._subscription is None and self.outcome is None:
            self._subscription = self.hub.subscribe(
                self.table, UPDATE, self._on_change, row_id=self.transaction_id
            )
        return self

    async def _on_change(self, change: ChangeEvent) -> None:
        await self.handle_status(change.new.get("Status"), change.new)

    async def handle_status(self, status: Optional[str], row: Dict[str, Any]) -> None:
        if self.outcome is not None or status not in (APPROVED, REJECTED):
            return
        # Claim the outcome before awaiting so a second event cannot run another action
        self.outcome = status
        self.close()
        try:
            if status == APPROVED:
                await self.on_approved(row)
            else:
                await self.on_rejected(row)
        finally:
            self._finished.set()

    async def wait(self) -> str:
        """Wait for a terminal status or the timeout; returns the outcome."""
        self.start()
        try:
            await asyncio.wait_for(self._finished.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            if self.outcome is None:
                self.outcome = TIMEOUT
                self.close()
                logger.info(f"Stopped waiting on transaction {self.transaction_id} after {self.timeout}s")
                if self.on_timeout is not None:
                    await self.on_timeout()
        finally:
            self.close()
        return self.outcome

    def close(self) -> None:
        if self._subscription is not None:
            self.hub.unsubscribe(self._subscription)
            self._subscription = None
        if self.outcome is None:
            self.outcome = CLOSED
            self._finished.set()

    async def __aenter__(self):
        return self.start()

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
