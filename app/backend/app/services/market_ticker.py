"""
BTC/USDT market ticker.
Follows the public Binance ticker stream and keeps the latest last-trade price,
used to value trophy NFTs in USDT.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import structlog
import websockets

from app.core.config import settings
from app.models.base import utcnow


logger = structlog.get_logger(__name__)


def parse_ticker_price(raw_message: Any) -> Optional[float]:
    """Last price (``c``) from a ticker payload, None when absent or invalid."""
    try:
        data = json.loads(raw_message)
        price = float(data["c"])
    except (ValueError, TypeError, KeyError):
        return None
    return price if price > 0 else None


def format_usdt_value(btc_amount: float, btc_price: float) -> str:
    """USDT value with precision scaled to the BTC amount."""
    value = (btc_amount or 0) * btc_price
    if btc_amount >= 1:
        return f"{value:.2f}"
    if btc_amount >= 0.001:
        return f"{value:.3f}"
    return f"{value:.4f}"


class MarketTicker:
    """WebSocket consumer holding the most recent BTC price."""

    def __init__(self, url: Optional[str] = None, reconnect_delay: Optional[int] = None):
        self.logger = logger.bind(service="market_ticker")
        self.url = url or settings.market_ticker_url
        self.reconnect_delay = reconnect_delay or settings.market_ticker_reconnect_delay

        self.price: Optional[float] = None
        self.updated_at = None
        self.messages = 0
        self.reconnects = 0

        self._should_stop = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._task and not self._task.done():
            self.logger.warning("Market ticker already running")
            return

        if not settings.market_ticker_enabled:
            self.logger.info("Market ticker disabled in configuration")
            return

        self._should_stop = False
        self._task = asyncio.create_task(self._run())
        self.logger.info("Market ticker started", url=self.url)

    async def stop(self) -> None:
        self._should_stop = True
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.logger.info("Market ticker stopped")

    async def _run(self) -> None:
        while not self._should_stop:
            try:
                async with websockets.connect(self.url, ping_interval=30, ping_timeout=10) as websocket:
                    self.logger.info("Connected to market data stream")
                    async for raw_message in websocket:
                        self.handle_message(raw_message)
            except asyncio.CancelledError:
                break
            except (websockets.exceptions.WebSocketException, OSError) as e:
                self.logger.warning("Market data stream disconnected", error=str(e))

            if self._should_stop:
                break
            self.reconnects += 1
            await asyncio.sleep(self.reconnect_delay)

    def handle_message(self, raw_message: Any) -> Optional[float]:
        price = parse_ticker_price(raw_message)
        if price is not None:
            self.price = price
            self.updated_at = utcnow()
            self.messages += 1
        return price

    def get_btc_price(self) -> Optional[float]:
        """Latest BTC/USDT price, None until the first tick."""
        return self.price

    def trophy_usdt_value(self, btc_price: float) -> Optional[str]:
        """USDT value of a trophy priced at ``btc_price`` BTC."""
        if self.price is None:
            return None
        return format_usdt_value(btc_price, self.price)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": bool(self._task and not self._task.done()),
            "price": self.price,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "messages": self.messages,
            "reconnects": self.reconnects,
        }


# Global ticker instance
_market_ticker: Optional[MarketTicker] = None


def get_market_ticker() -> MarketTicker:
    """Get or create the global market ticker."""
    global _market_ticker
    if _market_ticker is None:
        _market_ticker = MarketTicker()
    return _market_ticker


async def shutdown_market_ticker() -> None:
    global _market_ticker
    if _market_ticker:
        await _market_ticker.stop()
        _market_ticker = None
