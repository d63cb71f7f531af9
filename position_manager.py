# ============================================================================
# position_manager.py
# ============================================================================
"""
Position Manager - paper trading reducer
========================================

STATE:
  - TradingState is immutable. Every candle produces a new state through
    reduce(state, candle, settings) -> (state', events); nothing else mutates
    orders, positions or PnL.
  - Long and short share one code path. Side carries the direction sign and
    knows which extreme of a candle is favourable or adverse for it.
  - At most one side holds a position (position_side). The other side keeps
    its entry point and resting order, but cannot fill until the book is flat.

PRIORITY (one action per candle, first match wins):
  1. take profit   long, then short
  2. stop loss     long, then short
  3. fill          long, then short
  4. quote         both sides, re-quoted whenever the entry level moves

RESET:
  - Exits clear orders, targets and the position on BOTH sides.
  - Entry points survive a reset unless clear_entry_on_reset is set.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

from candles import Candle
from entry_selector import find_entry
from support_resistance import PivotLevel, SupportResistance

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS
# ============================================================================

class Side(Enum):
    LONG  = "long"
    SHORT = "short"

    @property
    def direction(self) -> int:
        return 1 if self is Side.LONG else -1

    def favorable(self, candle: Candle) -> float:
        """The extreme that moves toward this side's profit."""
        return candle.high if self is Side.LONG else candle.low

    def adverse(self, candle: Candle) -> float:
        return candle.low if self is Side.LONG else candle.high


SIDES: Tuple[Side, Side] = (Side.LONG, Side.SHORT)


class EventKind(Enum):
    ORDER_PLACED   = "ORDER_PLACED"
    ORDER_REQUOTED = "ORDER_REQUOTED"
    FILLED         = "FILLED"
    TAKE_PROFIT    = "TAKE_PROFIT"
    STOP_LOSS      = "STOP_LOSS"


ENTRY_REFRESH_MODES = ("every_bar", "when_absent")


# ============================================================================
# DATACLASSES
# ============================================================================

@dataclass(frozen=True)
class StrategySettings:
    profit_target:        float = 0.005
    stop_loss:            float = 0.005
    entry_refresh:        str   = "every_bar"
    clear_entry_on_reset: bool  = False

    def __post_init__(self):
        if self.entry_refresh not in ENTRY_REFRESH_MODES:
            raise ValueError(
                f"entry_refresh must be one of {ENTRY_REFRESH_MODES}, "
                f"got {self.entry_refresh!r}"
            )
        if self.profit_target < 0 or self.stop_loss < 0:
            raise ValueError("profit_target and stop_loss must be non-negative")

    @classmethod
    def from_config(cls) -> "StrategySettings":
        import config
        return cls(
            profit_target=config.PROFIT_TARGET,
            stop_loss=config.STOP_LOSS,
            entry_refresh=config.ENTRY_REFRESH,
            clear_entry_on_reset=config.CLEAR_ENTRY_ON_RESET,
        )


@dataclass(frozen=True)
class SideOrders:
    open_order:  Optional[float]      = None
    take_profit: Optional[float]      = None
    stop_loss:   Optional[float]      = None
    entry_point: Optional[PivotLevel] = None


@dataclass(frozen=True)
class PnL:
    running:        float = 0.0   # realized, whole session
    current:        float = 0.0   # unrealized, open position only
    hold_benchmark: float = 0.0   # close - first close (backtest)


@dataclass(frozen=True)
class TradeRecord:
    side:        Side
    entry_price: float
    exit_price:  float
    exit_kind:   EventKind
    opened_at:   Optional[int]
    closed_at:   int
    pnl:         float


@dataclass(frozen=True)
class TradeEvent:
    kind:      EventKind
    side:      Side
    price:     float
    timestamp: int
    pnl:       Optional[float]       = None
    trade:     Optional[TradeRecord] = None


@dataclass(frozen=True)
class TradingState:
    long:          SideOrders     = field(default_factory=SideOrders)
    short:         SideOrders     = field(default_factory=SideOrders)
    position_side: Optional[Side] = None
    opened_at:     Optional[int]  = None
    pnl:           PnL            = field(default_factory=PnL)

    @property
    def has_position(self) -> bool:
        return self.position_side is not None

    def orders(self, side: Side) -> SideOrders:
        return getattr(self, side.value)

    def with_orders(self, side: Side, orders: SideOrders) -> "TradingState":
        return replace(self, **{side.value: orders})


# ============================================================================
# TRANSITIONS
# ============================================================================

def _reached_favorable(side: Side, candle: Candle, level: float) -> bool:
    return side.direction * (side.favorable(candle) - level) >= 0


def _reached_adverse(side: Side, candle: Candle, level: float) -> bool:
    return side.direction * (level - side.adverse(candle)) >= 0


# (kind, level getter, trigger) evaluated in order, each for LONG then SHORT
_EXIT_RULES: Tuple[Tuple[EventKind, Callable[[SideOrders], Optional[float]],
                         Callable[[Side, Candle, float], bool]], ...] = (
    (EventKind.TAKE_PROFIT, lambda o: o.take_profit, _reached_favorable),
    (EventKind.STOP_LOSS,   lambda o: o.stop_loss,   _reached_adverse),
)


def reset(state: TradingState, clear_entry_points: bool = False) -> TradingState:
    """Clear orders, targets and the position on both sides."""
    def cleared(orders: SideOrders) -> SideOrders:
        return SideOrders(entry_point=None if clear_entry_points else orders.entry_point)

    return replace(
        state,
        long=cleared(state.long),
        short=cleared(state.short),
        position_side=None,
        opened_at=None,
    )


def refresh_entry_points(
    state: TradingState,
    candle: Candle,
    levels: SupportResistance,
    settings: StrategySettings,
) -> TradingState:
    """Select entry points for both sides while the book is flat."""
    if state.has_position:
        return state

    for side in SIDES:
        orders = state.orders(side)
        if settings.entry_refresh == "when_absent" and orders.entry_point is not None:
            continue
        entry = find_entry(side, candle, levels)
        if entry != orders.entry_point:
            state = state.with_orders(side, replace(orders, entry_point=entry))
    return state


def _close(
    state: TradingState,
    side: Side,
    kind: EventKind,
    exit_price: float,
    candle: Candle,
    settings: StrategySettings,
) -> Tuple[TradingState, List[TradeEvent]]:
    orders = state.orders(side)
    realized = side.direction * (exit_price - orders.open_order)
    trade = TradeRecord(
        side=side,
        entry_price=orders.open_order,
        exit_price=exit_price,
        exit_kind=kind,
        opened_at=state.opened_at,
        closed_at=candle.timestamp,
        pnl=realized,
    )
    state = replace(state, pnl=replace(state.pnl, running=state.pnl.running + realized))
    state = reset(state, settings.clear_entry_on_reset)
    return state, [TradeEvent(kind, side, exit_price, candle.timestamp, realized, trade)]


def _fill(
    state: TradingState,
    side: Side,
    candle: Candle,
    settings: StrategySettings,
) -> Tuple[TradingState, List[TradeEvent]]:
    orders = state.orders(side)
    reference = orders.entry_point.price
    d = side.direction
    orders = replace(
        orders,
        take_profit=reference * (1 + d * settings.profit_target),
        stop_loss=reference * (1 - d * settings.stop_loss),
    )
    state = replace(
        state.with_orders(side, orders),
        position_side=side,
        opened_at=candle.timestamp,
    )
    return state, [TradeEvent(EventKind.FILLED, side, orders.open_order, candle.timestamp)]


def reduce(
    state: TradingState,
    candle: Candle,
    settings: StrategySettings,
    first_close: Optional[float] = None,
) -> Tuple[TradingState, List[TradeEvent]]:
    """
    Apply one candle to the book.

    Args:
        state: book before the candle
        candle: the newest candle
        settings: trade parameters
        first_close: close of the first replayed candle (backtest only);
            when given, hold_benchmark is recomputed

    Returns:
        (new state, events produced by this candle)
    """
    current = 0.0
    if state.position_side is not None:
        held = state.orders(state.position_side)
        current = state.position_side.direction * (candle.close - held.open_order)
    hold = candle.close - first_close if first_close is not None else state.pnl.hold_benchmark
    state = replace(state, pnl=replace(state.pnl, current=current, hold_benchmark=hold))

    # Exits
    for kind, level_of, triggered in _EXIT_RULES:
        for side in SIDES:
            if state.position_side is not side:
                continue
            level = level_of(state.orders(side))
            if level is not None and triggered(side, candle, level):
                return _close(state, side, kind, level, candle, settings)

    if state.has_position:
        return state, []

    # Fills
    for side in SIDES:
        orders = state.orders(side)
        if orders.entry_point is None or orders.open_order is None:
            continue
        if _reached_adverse(side, candle, orders.open_order):
            return _fill(state, side, candle, settings)

    # Quotes
    events: List[TradeEvent] = []
    for side in SIDES:
        orders = state.orders(side)
        entry = orders.entry_point
        if entry is None or orders.open_order == entry.price:
            continue
        kind = EventKind.ORDER_PLACED if orders.open_order is None else EventKind.ORDER_REQUOTED
        state = state.with_orders(side, replace(orders, open_order=entry.price))
        events.append(TradeEvent(kind, side, entry.price, candle.timestamp))
    return state, events
