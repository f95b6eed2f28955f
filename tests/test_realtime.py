import pytest

from spebit.core.event_emitter import emit_event
from spebit.core.realtime import DELETE, INSERT, UPDATE, RealtimeHub


class FakeSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


@pytest.mark.asyncio
async def test_subscriptions_filter_by_table_event_and_row():
    hub = RealtimeHub()
    seen = []

    async def record(change):
        seen.append((change.table, change.event, change.row_id))

    hub.subscribe("Transactions", UPDATE, record, row_id="tx-1")
    hub.subscribe("Transactions", "*", record)

    await hub.publish_change("Transactions", UPDATE, "tx-1", new={"Status": "approved"})
    await hub.publish_change("Transactions", INSERT, "tx-2")
    await hub.publish_change("Users", DELETE, "tx-1")

    assert seen == [
        ("Transactions", UPDATE, "tx-1"),
        ("Transactions", UPDATE, "tx-1"),
        ("Transactions", INSERT, "tx-2"),
    ]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_the_others():
    hub = RealtimeHub()
    seen = []

    async def broken(change):
        raise RuntimeError("boom")

    async def record(change):
        seen.append(change.row_id)

    hub.subscribe("Transactions", UPDATE, broken)
    hub.subscribe("Transactions", UPDATE, record)

    await hub.publish_change("Transactions", UPDATE, "tx-1")

    assert seen == ["tx-1"]


@pytest.mark.asyncio
async def test_unsubscribe_inside_callback():
    hub = RealtimeHub()
    calls = []

    async def once(change):
        calls.append(change.row_id)
        hub.unsubscribe(subscription)

    subscription = hub.subscribe("Transactions", UPDATE, once)
    await hub.publish_change("Transactions", UPDATE, "tx-1")
    await hub.publish_change("Transactions", UPDATE, "tx-2")

    assert calls == ["tx-1"]
    assert hub.subscription_count == 0


@pytest.mark.asyncio
async def test_emit_event_targets_users_admins_and_everyone():
    hub = RealtimeHub()
    alice, bob, admin = FakeSocket(), FakeSocket(), FakeSocket()
    hub.connections.active_connections["user"] = {"alice": {alice}, "bob": {bob}}
    hub.connections.active_connections["admin"] = {"root": {admin}}

    await emit_event(hub, "transaction_status_updated", {"status": "approved"}, user_id="alice")
    await emit_event(hub, "transaction_created", {"id": "tx-1"}, admins=True)
    await emit_event(hub, "price_alert", {"symbol": "BTC"}, broadcast=True)

    assert [m["type"] for m in alice.sent] == ["transaction_status_updated", "price_alert"]
    assert [m["type"] for m in bob.sent] == ["price_alert"]
    assert [m["type"] for m in admin.sent] == ["transaction_created", "price_alert"]
