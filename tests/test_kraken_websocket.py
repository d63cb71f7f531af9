# tests/test_kraken_websocket.py
import json
from unittest.mock import Mock

from kraken_websocket import KrakenWebSocket


def test_subscribe_before_connect_is_queued_and_sent_on_open():
    client = KrakenWebSocket(url="wss://example.test")
    callback = Mock()
    client.subscribe_ohlc("XBT/USD", 1, callback=callback)
    client.subscribe_ohlc("XBT/USD", 1, callback=callback)

    assert client.ohlc_callbacks == [callback]
    assert client._subscriptions == [{"pair": "XBT/USD", "interval": 1}]

    client.ws = Mock()
    client._on_open(client.ws)

    assert client.is_connected
    client.ws.send.assert_called_once()
    sent = json.loads(client.ws.send.call_args[0][0])
    assert sent == {"event": "subscribe", "pair": ["XBT/USD"], "subscription": {"name": "ohlc", "interval": 1}}


def test_subscribe_while_connected_sends_immediately():
    client = KrakenWebSocket(url="wss://example.test")
    client.ws = Mock()
    client.is_connected = True
    client.subscribe_ohlc("ETH/USD", 5)
    sent = json.loads(client.ws.send.call_args[0][0])
    assert sent["pair"] == ["ETH/USD"]
    assert sent["subscription"]["interval"] == 5


def test_messages_reach_every_callback_even_if_one_fails():
    client = KrakenWebSocket(url="wss://example.test")
    broken = Mock(side_effect=RuntimeError("boom"))
    healthy = Mock()
    client.subscribe_ohlc("XBT/USD", callback=broken)
    client.subscribe_ohlc("XBT/USD", callback=healthy)

    client._on_message(None, '{"event":"heartbeat"}')

    broken.assert_called_once_with('{"event":"heartbeat"}')
    healthy.assert_called_once_with('{"event":"heartbeat"}')


def test_health_tracks_connection_and_staleness(monkeypatch):
    client = KrakenWebSocket(url="wss://example.test")
    assert not client.is_healthy()

    clock = Mock()
    clock.time.return_value = 1000.0
    monkeypatch.setattr("kraken_websocket.time", clock)
    client.ws = Mock()
    client._on_open(client.ws)
    assert client.is_healthy(timeout_seconds=30)

    clock.time.return_value = 1100.0
    assert not client.is_healthy(timeout_seconds=30)

    client._on_close(client.ws, 1000, "bye")
    assert not client.is_connected
