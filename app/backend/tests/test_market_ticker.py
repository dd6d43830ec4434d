"""
Tests for the BTC ticker message handling.
"""

import json

import pytest

from app.services.market_ticker import MarketTicker, format_usdt_value, parse_ticker_price


def ticker_message(price):
    return json.dumps({"e": "24hrTicker", "s": "BTCUSDT", "c": price})


def test_parse_ticker_price():
    assert parse_ticker_price(ticker_message("64123.45")) == 64123.45
    assert parse_ticker_price(ticker_message("0")) is None
    assert parse_ticker_price(json.dumps({"s": "BTCUSDT"})) is None
    assert parse_ticker_price("not json") is None


@pytest.mark.parametrize("btc_amount, expected", [
    (1.5, "90000.00"),
    (0.0011, "66.000"),
    (0.000011, "0.6600"),
])
def test_format_usdt_value(btc_amount, expected):
    assert format_usdt_value(btc_amount, 60000) == expected


def test_handle_message_keeps_last_price():
    ticker = MarketTicker(url="wss://example.invalid/ws")
    assert ticker.get_btc_price() is None
    assert ticker.trophy_usdt_value(0.0011) is None

    ticker.handle_message(ticker_message("60000"))
    ticker.handle_message("garbage")

    assert ticker.get_btc_price() == 60000
    assert ticker.trophy_usdt_value(0.0011) == "66.000"
    status = ticker.get_status()
    assert status["messages"] == 1
    assert not status["running"]


@pytest.mark.asyncio
async def test_disabled_ticker_does_not_connect():
    ticker = MarketTicker(url="wss://example.invalid/ws")
    await ticker.start()
    assert not ticker.get_status()["running"]
    await ticker.stop()
