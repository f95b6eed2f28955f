# spebit/core/price_monitor.py
import logging
from decimal import Decimal
from typing import Dict, Optional

from spebit.core.event_emitter import emit_event
from spebit.core.realtime import RealtimeHub

logger = logging.getLogger(__name__)


class PriceMonitor:
    """Broadcasts price alerts and new-listing notices to connected clients."""

    def __init__(self, hub: RealtimeHub, threshold: Decimal = Decimal("5")):
        self.hub = hub
        self.threshold = Decimal(threshold)
        self._last_prices: Dict[str, Decimal] = {}

    def last_price(self, symbol: str) -> Optional[Decimal]:
        return self._last_prices.get(symbol)

    async def update_price(
        self,
        symbol: str,
        name: str,
        new_price: Decimal,
        previous_price: Optional[Decimal] = None,
    ) -> Optional[dict]:
        new_price = Decimal(new_price)
        last_price = self._last_prices.get(symbol, previous_price)
        self._last_prices[symbol] = new_price

        if not last_price or Decimal(last_price) == new_price:
            return None

        percent_change = (new_price - Decimal(last_price)) / Decimal(last_price) * 100
        if abs(percent_change) < self.threshold:
            return None

        alert = {
            "symbol": symbol,
            "name": name,
            "direction": "up" if percent_change > 0 else "down",
            "percent_change": str(abs(percent_change).quantize(Decimal("0.01"))),
            "price": str(new_price),
        }
        logger.info(f"Price alert for {symbol}: {alert['direction']} {alert['percent_change']}%")
        await emit_event(self.hub, "price_alert", alert, broadcast=True)
        return alert

    async def notify_new_crypto(self, symbol: str, name: str, price: Decimal) -> dict:
        self._last_prices[symbol] = Decimal(price)
        notice = {"symbol": symbol, "name": name, "price": str(price)}
        await emit_event(self.hub, "new_cryptocurrency", notice, broadcast=True)
        return notice
