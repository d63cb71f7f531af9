"""
Kraken public WebSocket - OHLC stream

Features:
- Automatic reconnection with exponential backoff
- Resubscription after reconnect
- Thread-safe callback management
- Connection health (staleness) monitoring

Raw text payloads are passed to callbacks untouched; parsing happens on the
consumer side.
"""

import json
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import websocket

import config

logger = logging.getLogger(__name__)


class KrakenWebSocket:
    """WebSocket client with auto-reconnect and auto-resubscribe"""

    def __init__(self, url: str = config.KRAKEN_WS_URL) -> None:
        self.url = url
        self.ws: Optional[websocket.WebSocketApp] = None
        self.is_connected = False
        self.stop_event = threading.Event()

        self._callbacks_lock = threading.RLock()
        self.ohlc_callbacks: List[Callable[[str], None]] = []

        self._subscriptions_lock = threading.RLock()
        self._subscriptions: List[Dict] = []

        self._last_message_time: Optional[float] = None
        self._reconnect_delay = 1.0
        self._max_reconnect_delay = 30.0
        self._thread: Optional[threading.Thread] = None

    # -----------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------
    def _on_open(self, ws) -> None:
        self.is_connected = True
        self._reconnect_delay = 1.0
        self._last_message_time = time.time()
        logger.info(f"WebSocket connected to {self.url}")
        self._resubscribe_all()

    def _on_message(self, ws, message: str) -> None:
        self._last_message_time = time.time()
        with self._callbacks_lock:
            callbacks = list(self.ohlc_callbacks)
        for callback in callbacks:
            try:
                callback(message)
            except Exception as e:
                logger.error(f"OHLC callback error: {e}", exc_info=True)

    def _on_error(self, ws, error) -> None:
        logger.error(f"WebSocket error: {error}")

    def _on_close(self, ws, status_code, message) -> None:
        self.is_connected = False
        logger.warning(f"WebSocket closed: {status_code} {message}")

    # -----------------------------------------------------------------
    # Subscriptions
    # -----------------------------------------------------------------
    @staticmethod
    def _subscribe_payload(sub: Dict) -> str:
        return json.dumps({
            "event": "subscribe",
            "pair": [sub["pair"]],
            "subscription": {"name": "ohlc", "interval": sub["interval"]},
        })

    def _send(self, payload: str) -> None:
        if self.ws and self.is_connected:
            self.ws.send(payload)

    def _resubscribe_all(self) -> None:
        with self._subscriptions_lock:
            subs = list(self._subscriptions)
        for sub in subs:
            try:
                self._send(self._subscribe_payload(sub))
                logger.info(f"Subscribed to ohlc-{sub['interval']}: {sub['pair']}")
            except Exception as e:
                logger.error(f"Error subscribing {sub['pair']}: {e}")

    def subscribe_ohlc(self, pair: str, interval: int = 1, callback: Optional[Callable[[str], None]] = None) -> None:
        """Subscribe to OHLC updates (thread-safe); replayed on every reconnect"""
        if callback:
            with self._callbacks_lock:
                if callback not in self.ohlc_callbacks:
                    self.ohlc_callbacks.append(callback)

        sub = {"pair": pair, "interval": interval}
        with self._subscriptions_lock:
            if sub not in self._subscriptions:
                self._subscriptions.append(sub)

        if self.is_connected:
            self._send(self._subscribe_payload(sub))
            logger.info(f"Subscribed to ohlc-{interval}: {pair}")

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------
    def _run(self) -> None:
        while not self.stop_event.is_set():
            try:
                self.ws = websocket.WebSocketApp(
                    self.url,
                    on_open=self._on_open,
                    on_message=self._on_message,
                    on_error=self._on_error,
                    on_close=self._on_close,
                )
                self.ws.run_forever(ping_interval=30, ping_timeout=10)
            except Exception as e:
                logger.error(f"WebSocket crashed: {e}", exc_info=True)
            self.is_connected = False

            if self.stop_event.wait(self._reconnect_delay):
                break
            logger.info(f"Reconnecting to {self.url} (waited {self._reconnect_delay:.0f}s)")
            self._reconnect_delay = min(self._reconnect_delay * 2, self._max_reconnect_delay)

    def connect(self, timeout: float = 30.0) -> bool:
        """Start the socket thread and wait for the connection"""
        self.stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="kraken-ws", daemon=True)
        self._thread.start()

        deadline = time.time() + timeout
        while time.time() < deadline and not self.is_connected:
            time.sleep(0.1)
        if not self.is_connected:
            logger.error(f"WebSocket did not connect within {timeout:.0f}s")
        return self.is_connected

    def disconnect(self) -> None:
        self.stop_event.set()
        try:
            if self.ws:
                self.ws.close()
        except Exception as e:
            logger.error(f"Disconnect error: {e}", exc_info=True)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self.is_connected = False
        logger.info("WebSocket disconnected")

    def is_healthy(self, timeout_seconds: float = 30.0) -> bool:
        """False when disconnected or silent for longer than ``timeout_seconds``"""
        if not self.is_connected:
            return False
        if self._last_message_time is None:
            return True
        return time.time() - self._last_message_time < timeout_seconds
