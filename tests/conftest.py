# tests/conftest.py
import pytest

from candles import Candle
from position_manager import StrategySettings

MINUTE_MS = 60_000


def make_candle(i, low, high, open_=None, close=None):
    """Candle number ``i`` on a one-minute grid; open/close default inside the range."""
    mid = (low + high) / 2
    return Candle(
        timestamp=1_700_000_000_000 + i * MINUTE_MS,
        open=mid if open_ is None else open_,
        high=high,
        low=low,
        close=mid if close is None else close,
    )


def candles_from_lows(lows, height=1.0):
    return [make_candle(i, low, low + height) for i, low in enumerate(lows)]


def candles_from_highs(highs, height=1.0):
    return [make_candle(i, high - height, high) for i, high in enumerate(highs)]


@pytest.fixture
def settings():
    return StrategySettings(profit_target=0.005, stop_loss=0.005)


@pytest.fixture
def valley_window():
    # support pivot at index 3 (low=7), resistance pivot at index 6 (high=12)
    return candles_from_lows([10, 9, 8, 7, 9, 10, 11, 10, 9, 10])
