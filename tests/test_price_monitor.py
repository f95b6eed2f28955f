from decimal import Decimal

import pytest

from spebit.core.price_monitor import PriceMonitor
from spebit.core.realtime import RealtimeHub


class FakeSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


@pytest.fixture
def hub_and_socket():
    hub = RealtimeHub()
    socket = FakeSocket()
    hub.connections.active_connections["user"] = {"alice": {socket}}
    return hub, socket


@pytest.mark.asyncio
async def test_alert_when_price_moves_past_threshold(hub_and_socket):
    hub, socket = hub_and_socket
    monitor = PriceMonitor(hub, Decimal("5"))

    alert = await monitor.update_price("BTC", "Bitcoin", Decimal("105"), Decimal("100"))

    assert alert["direction"] == "up"
    assert alert["percent_change"] == "5.00"
    assert socket.sent[-1]["type"] == "price_alert"
    assert socket.sent[-1]["data"]["symbol"] == "BTC"


@pytest.mark.asyncio
async def test_small_moves_are_quiet_and_tracked(hub_and_socket):
    hub, socket = hub_and_socket
    monitor = PriceMonitor(hub, Decimal("5"))

    assert await monitor.update_price("BTC", "Bitcoin", Decimal("102"), Decimal("100")) is None
    assert monitor.last_price("BTC") == Decimal("102")

    alert = await monitor.update_price("BTC", "Bitcoin", Decimal("90"))
    assert alert["direction"] == "down"
    assert alert["percent_change"] == "11.76"
    assert len(socket.sent) == 1


@pytest.mark.asyncio
async def test_unknown_previous_price_never_alerts(hub_and_socket):
    hub, socket = hub_and_socket
    monitor = PriceMonitor(hub)

    assert await monitor.update_price("ETH", "Ethereum", Decimal("250000")) is None
    assert socket.sent == []


@pytest.mark.asyncio
async def test_new_listing_is_broadcast(hub_and_socket):
    hub, socket = hub_and_socket
    monitor = PriceMonitor(hub)

    await monitor.notify_new_crypto("SOL", "Solana", Decimal("12000"))

    assert socket.sent[0]["type"] == "new_cryptocurrency"
    assert socket.sent[0]["data"] == {"symbol": "SOL", "name": "Solana", "price": "12000"}
    assert monitor.last_price("SOL") == Decimal("12000")
