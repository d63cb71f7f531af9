"""
Candle model + normalizer
=========================
Converts raw Kraken records into canonical candles and keeps the bounded
candle window the rest of the pipeline reads from.

Historical rows (REST):  [time_sec, open, high, low, close, vwap, volume, count]
Streaming rows (WS):     [channel_id, [time, etime, open, high, low, close,
                          vwap, volume, count], "ohlc-1", "XBT/USD"]
"""

import json
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

from errors import FeedMismatch, MalformedCandle

logger = logging.getLogger(__name__)


# =====================================================================
# Candle model
# =====================================================================
@dataclass(frozen=True)
class Candle:
    timestamp: int  # milliseconds
    open: float
    high: float
    low: float
    close: float


def _to_float(value, field_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedCandle(f"{field_name} is not numeric: {value!r}") from None
    if not math.isfinite(number):
        raise MalformedCandle(f"{field_name} is not finite: {value!r}")
    return number


def _build(timestamp_sec, o, h, l, c) -> Candle:
    seconds = _to_float(timestamp_sec, "timestamp")
    candle = Candle(
        timestamp=int(round(seconds * 1000)),
        open=_to_float(o, "open"),
        high=_to_float(h, "high"),
        low=_to_float(l, "low"),
        close=_to_float(c, "close"),
    )
    if not (candle.low <= candle.open <= candle.high
            and candle.low <= candle.close <= candle.high):
        raise MalformedCandle(f"OHLC out of range: {candle}")
    return candle


# =====================================================================
# Normalizer
# =====================================================================
def normalize(raw: Sequence) -> Candle:
    """
    Convert one historical row ``[time_sec, open, high, low, close, ...]``.

    Raises:
        MalformedCandle: row too short, non-numeric field, or OHLC invariant broken
    """
    if not isinstance(raw, (list, tuple)) or len(raw) < 5:
        raise MalformedCandle(f"expected at least 5 fields, got {raw!r}")
    return _build(raw[0], raw[1], raw[2], raw[3], raw[4])


def normalize_batch(rows: Iterable[Sequence]) -> List[Candle]:
    """Normalize a REST batch, skipping rows that fail to parse."""
    candles: List[Candle] = []
    dropped = 0
    for row in rows:
        try:
            candles.append(normalize(row))
        except MalformedCandle as e:
            dropped += 1
            logger.warning(f"Dropping historical row: {e}")
    if dropped:
        logger.warning(f"Dropped {dropped} malformed historical rows")
    candles.sort(key=lambda c: c.timestamp)
    return candles


def parse_stream_message(message: str, pair: str) -> Candle:
    """
    Decode one WebSocket payload into a candle.

    The candle is keyed by the bar's start time, ``etime`` minus the interval
    named in the ``"ohlc-N"`` channel, which is how REST rows are keyed. Updates
    to the bar in progress therefore replace both streamed and seeded bars.

    Raises:
        MalformedCandle: payload is not JSON or the OHLC fields are unusable
        FeedMismatch: payload is not an OHLC update for ``pair``
    """
    try:
        payload = json.loads(message)
    except (TypeError, ValueError) as e:
        raise MalformedCandle(f"invalid JSON: {e}") from None

    if not isinstance(payload, list) or len(payload) < 3 or payload[-1] != pair:
        raise FeedMismatch(f"not an update for {pair}: {str(message)[:80]}")

    row = payload[1]
    if not isinstance(row, list) or len(row) < 6:
        raise MalformedCandle(f"unexpected OHLC body: {row!r}")
    start_sec = _to_float(row[1], "etime") - _channel_interval_min(payload[-2]) * 60
    return _build(start_sec, row[2], row[3], row[4], row[5])


def _channel_interval_min(channel) -> int:
    """Interval in minutes from a channel name such as ``"ohlc-5"``."""
    name, _, interval = str(channel).partition("-")
    if name != "ohlc" or not interval.isdigit() or int(interval) < 1:
        raise FeedMismatch(f"not an OHLC channel: {channel!r}")
    return int(interval)


# =====================================================================
# Candle series
# =====================================================================
class CandleSeries:
    """
    Ordered window of candles bounded to ``bar_count``.

    Only the most recent candle can be updated in place, so upserts are O(1).
    """

    def __init__(self, bar_count: int, candles: Optional[Iterable[Candle]] = None) -> None:
        if bar_count < 1:
            raise ValueError("bar_count must be positive")
        self.bar_count = bar_count
        self._candles: deque = deque(maxlen=bar_count)
        for candle in candles or ():
            self.ingest(candle)

    def ingest(self, candle: Candle) -> "CandleSeries":
        """Replace the last bar when timestamps match, append otherwise."""
        if self._candles:
            last = self._candles[-1]
            if candle.timestamp == last.timestamp:
                self._candles[-1] = candle
                return self
            if candle.timestamp < last.timestamp:
                logger.warning(
                    f"Skipping out-of-order candle {candle.timestamp} "
                    f"(last stored {last.timestamp})"
                )
                return self
        self._candles.append(candle)
        return self

    @property
    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def to_list(self) -> List[Candle]:
        return list(self._candles)

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def __getitem__(self, index: int) -> Candle:
        return self._candles[index]


def ingest(series: CandleSeries, candle: Candle) -> CandleSeries:
    return series.ingest(candle)
