"""Entry point selection: the nearest level still beyond current price action."""

from typing import Optional

from candles import Candle
from support_resistance import PivotLevel, SupportResistance


def find_entry_long(candle: Candle, levels: SupportResistance) -> Optional[PivotLevel]:
    """Highest support strictly below the candle's low, or None."""
    for level in sorted(levels.support_lines, key=lambda p: p.price, reverse=True):
        if level.price < candle.low:
            return level
    return None


def find_entry_short(candle: Candle, levels: SupportResistance) -> Optional[PivotLevel]:
    """Lowest resistance strictly above the candle's high, or None."""
    for level in sorted(levels.resistance_lines, key=lambda p: p.price):
        if level.price > candle.high:
            return level
    return None


_SELECTORS = {
    "long":  find_entry_long,
    "short": find_entry_short,
}


def find_entry(side, candle: Candle, levels: SupportResistance) -> Optional[PivotLevel]:
    """Dispatch on ``side`` (a Side or its value, "long" / "short")."""
    key = getattr(side, "value", side)
    try:
        selector = _SELECTORS[key]
    except KeyError:
        raise ValueError(f"unknown side: {side!r}") from None
    return selector(candle, levels)
