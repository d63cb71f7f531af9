"""
Paper Trading Session
=====================
One instrument, one window, one book.

Pattern: feed -> normalize -> levels + entry points (window so far) -> reducer
         -> append to window -> snapshot

Every candle is processed to completion before the next one is looked at.
Live messages arrive on the transport's thread and are handed over through a
single-consumer queue; the replay driver calls on_candle directly. Both paths
go through the same lock.
"""

import logging
import queue as _queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from candles import Candle, CandleSeries, parse_stream_message
from errors import FeedMismatch, InsufficientData, MalformedCandle
from position_manager import (
    SIDES,
    EventKind,
    PnL,
    Side,
    SideOrders,
    StrategySettings,
    TradeEvent,
    TradeRecord,
    TradingState,
    reduce,
    refresh_entry_points,
)
from state_machine import PositionStateMachine
from support_resistance import PivotLevel, SupportResistance, find_support_and_resistance

logger = logging.getLogger(__name__)

_STOP = object()


# =====================================================================
# Snapshot
# =====================================================================
@dataclass(frozen=True)
class Snapshot:
    """Read-only projection handed to whatever renders the session."""
    candles: Tuple[Candle, ...]
    levels: SupportResistance
    long: SideOrders
    short: SideOrders
    position_side: Optional[Side]
    pnl: PnL
    trades: Tuple[TradeRecord, ...]

    @property
    def has_position(self) -> bool:
        return self.position_side is not None

    @property
    def show_levels(self) -> bool:
        # levels are hidden while a position is open
        return self.position_side is None

    def entry_point(self, side: Side) -> Optional[PivotLevel]:
        return self.orders(side).entry_point

    def orders(self, side: Side) -> SideOrders:
        return self.long if side is Side.LONG else self.short

    def displayed_orders(self, side: Side) -> Optional[SideOrders]:
        """Orders to draw for ``side``; None while the other side holds a position."""
        if self.position_side is not None and self.position_side is not side:
            return None
        return self.orders(side)


def _fmt_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%H:%M:%S")


# =====================================================================
# Session
# =====================================================================
class TradingSession:
    """
    Owns the candle window, the trading book and the per-side lifecycles.
    """

    def __init__(
        self,
        settings: StrategySettings,
        bar_count: int,
        pair: str,
        on_snapshot: Optional[Callable[[Snapshot], None]] = None,
    ) -> None:
        self.settings = settings
        self.pair = pair
        self.series = CandleSeries(bar_count)
        self.state = TradingState()
        self.levels = SupportResistance.empty()
        self.trades: List[TradeRecord] = []
        self.machines: Dict[Side, PositionStateMachine] = {
            side: PositionStateMachine(side) for side in SIDES
        }
        self.on_snapshot = on_snapshot

        self._lock = threading.RLock()
        self._inbox: _queue.Queue = _queue.Queue()
        self._worker: Optional[threading.Thread] = None

        self.dropped_messages = 0
        self.processed_candles = 0

        logger.info(
            f"TradingSession initialized for {pair} "
            f"(bars={bar_count}, tp={settings.profit_target}, sl={settings.stop_loss}, "
            f"refresh={settings.entry_refresh})"
        )

    # -----------------------------------------------------------------
    # Processing
    # -----------------------------------------------------------------
    def seed(self, candles: Iterable[Candle]) -> Snapshot:
        """Load history into the window without trading on it."""
        with self._lock:
            for candle in candles:
                self.series.ingest(candle)
            self.levels = self._detect()
            logger.info(
                f"Seeded {len(self.series)} candles: "
                f"{len(self.levels.support_lines)} support / "
                f"{len(self.levels.resistance_lines)} resistance levels"
            )
            return self.snapshot()

    def on_candle(self, candle: Candle, first_close: Optional[float] = None) -> Snapshot:
        """
        Trade one candle against the levels of the window as it stood before it,
        then add it to the window.
        """
        with self._lock:
            previous = self.series.last
            if previous is not None and candle.timestamp < previous.timestamp:
                logger.warning(f"Ignoring out-of-order candle {candle.timestamp}")
                return self.snapshot()
            self.levels = self._detect()

            state = self.state
            if previous is not None:
                state = refresh_entry_points(state, previous, self.levels, self.settings)
            state, events = reduce(state, candle, self.settings, first_close)
            self.state = state
            self.series.ingest(candle)
            self.processed_candles += 1

            for event in events:
                self._log_event(event)
                if event.trade is not None:
                    self.trades.append(event.trade)

            reason = events[0].kind.value if events else None
            for side, machine in self.machines.items():
                machine.sync(state, side, candle.timestamp, reason)

            snap = self.snapshot()

        if self.on_snapshot:
            try:
                self.on_snapshot(snap)
            except Exception as e:
                logger.error(f"Snapshot callback error: {e}", exc_info=True)
        return snap

    def process_message(self, message: str) -> Optional[Snapshot]:
        """Parse one streaming payload and apply it; bad payloads change nothing."""
        try:
            candle = parse_stream_message(message, self.pair)
        except FeedMismatch:
            return None
        except MalformedCandle as e:
            self.dropped_messages += 1
            logger.warning(f"Dropping malformed message: {e}")
            return None
        return self.on_candle(candle)

    def _detect(self) -> SupportResistance:
        try:
            return find_support_and_resistance(self.series.to_list())
        except InsufficientData as e:
            logger.debug(f"No levels yet: {e}")
            return SupportResistance.empty()

    def _log_event(self, event: TradeEvent) -> None:
        at = _fmt_time(event.timestamp)
        side = event.side.value.upper()
        if event.kind is EventKind.ORDER_PLACED:
            logger.info(f"Creating {side} order at {event.price:.2f} at {at}")
        elif event.kind is EventKind.ORDER_REQUOTED:
            logger.info(f"Moving {side} order to {event.price:.2f} at {at}")
        elif event.kind is EventKind.FILLED:
            orders = self.state.orders(event.side)
            logger.info(f"{side} order filled at {event.price:.2f} at {at}")
            logger.info(f"Creating take profit order at {orders.take_profit:.2f} at {at}")
            logger.info(f"Creating stop loss order at {orders.stop_loss:.2f} at {at}")
        else:
            label = "Take profit" if event.kind is EventKind.TAKE_PROFIT else "Stop loss"
            logger.info(
                f"{label} order filled at {event.price:.2f} at {at} "
                f"({side} pnl={event.pnl:+.2f}, running={self.state.pnl.running:+.2f})"
            )

    # -----------------------------------------------------------------
    # Single-consumer queue
    # -----------------------------------------------------------------
    def submit_message(self, message: str) -> None:
        """Hand a raw transport message to the processing thread."""
        self._inbox.put(message)

    def start(self) -> None:
        if self._worker and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._consume, name="candle-consumer", daemon=True)
        self._worker.start()
        logger.info("Candle consumer started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self._worker:
            return
        self._inbox.put(_STOP)
        self._worker.join(timeout=timeout)
        self._worker = None
        logger.info("Candle consumer stopped")

    def _consume(self) -> None:
        while True:
            message = self._inbox.get()
            try:
                if message is _STOP:
                    return
                self.process_message(message)
            except Exception as e:
                logger.error(f"Error processing message: {e}", exc_info=True)
            finally:
                self._inbox.task_done()

    def wait_idle(self) -> None:
        """Block until every submitted message has been processed."""
        self._inbox.join()

    # -----------------------------------------------------------------
    # Read side
    # -----------------------------------------------------------------
    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                candles=tuple(self.series),
                levels=self.levels,
                long=self.state.long,
                short=self.state.short,
                position_side=self.state.position_side,
                pnl=self.state.pnl,
                trades=tuple(self.trades),
            )

    def status_line(self) -> str:
        snap = self.snapshot()
        last = snap.candles[-1].close if snap.candles else 0.0
        position = snap.position_side.value.upper() if snap.position_side else "FLAT"
        return (
            f"price={last:.2f} position={position} trades={len(snap.trades)} "
            f"running={snap.pnl.running:+.2f} current={snap.pnl.current:+.2f} "
            f"hold={snap.pnl.hold_benchmark:+.2f}"
        )
