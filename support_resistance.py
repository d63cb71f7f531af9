"""
Support / Resistance Detector
=============================
Five-bar pivots on lows (support) and highs (resistance), collapsed into
distinct levels.

A pivot may tie the two bars before it but must be strictly beyond the two
bars after it. Levels closer than 2x the average bar range to an already kept
(more extreme) level of the same kind are dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from candles import Candle
from errors import InsufficientData

logger = logging.getLogger(__name__)

MIN_WINDOW = 5
PIVOT_SPAN = 2
DEDUP_RANGE_MULTIPLIER = 2.0


@dataclass(frozen=True)
class PivotLevel:
    timestamp: int
    price: float


@dataclass(frozen=True)
class SupportResistance:
    support_lines: List[PivotLevel] = field(default_factory=list)
    resistance_lines: List[PivotLevel] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "SupportResistance":
        return cls()


def average_bar_range(candles: Sequence[Candle]) -> float:
    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)
    return float(np.mean(highs - lows))


def _pivot_indices(values: np.ndarray, lowest: bool) -> np.ndarray:
    n = len(values)
    idx = np.arange(PIVOT_SPAN, n - PIVOT_SPAN)
    v = values[idx]
    if lowest:
        mask = ((values[idx - 2] >= v) & (values[idx - 1] >= v)
                & (values[idx + 1] > v) & (values[idx + 2] > v))
    else:
        mask = ((values[idx - 2] <= v) & (values[idx - 1] <= v)
                & (values[idx + 1] < v) & (values[idx + 2] < v))
    return idx[mask]


def _dedupe(levels: List[PivotLevel], threshold: float) -> List[PivotLevel]:
    kept: List[PivotLevel] = []
    for level in levels:
        if all(abs(level.price - k.price) > threshold for k in kept):
            kept.append(level)
    return kept


def find_support_and_resistance(candles: Sequence[Candle]) -> SupportResistance:
    """
    Scan a candle window and return deduplicated support/resistance levels.

    Supports come back ascending by price, resistances descending.

    Raises:
        InsufficientData: fewer than 5 candles
    """
    if len(candles) < MIN_WINDOW:
        raise InsufficientData(len(candles), MIN_WINDOW)

    candles = list(candles)
    lows = np.array([c.low for c in candles], dtype=float)
    highs = np.array([c.high for c in candles], dtype=float)

    supports = [PivotLevel(candles[i].timestamp, candles[i].low)
                for i in _pivot_indices(lows, lowest=True)]
    resistances = [PivotLevel(candles[i].timestamp, candles[i].high)
                   for i in _pivot_indices(highs, lowest=False)]

    # stable sorts: on equal prices the earlier pivot wins
    supports.sort(key=lambda p: p.price)
    resistances.sort(key=lambda p: p.price, reverse=True)

    threshold = DEDUP_RANGE_MULTIPLIER * average_bar_range(candles)
    result = SupportResistance(
        support_lines=_dedupe(supports, threshold),
        resistance_lines=_dedupe(resistances, threshold),
    )
    logger.debug(
        f"Levels: {len(supports)} support pivots -> {len(result.support_lines)}, "
        f"{len(resistances)} resistance pivots -> {len(result.resistance_lines)} "
        f"(threshold {threshold:.4f})"
    )
    return result
