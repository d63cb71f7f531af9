"""
Replay driver (backtest mode)
=============================
Seeds the session with the first ``bar_count`` candles, then feeds the rest
one at a time with a fixed pause between them. Stops when the history is
exhausted or when stop() is called; a candle already being applied always
completes.
"""

import logging
import threading
from typing import Optional, Sequence

from candles import Candle
from paper_trader import Snapshot, TradingSession

logger = logging.getLogger(__name__)


class ReplayDriver:
    def __init__(
        self,
        session: TradingSession,
        candles: Sequence[Candle],
        bar_count: int,
        delay_ms: int,
    ) -> None:
        self.session = session
        self.candles = list(candles)
        self.bar_count = bar_count
        self.delay_sec = max(delay_ms, 0) / 1000.0

        self.stop_event = threading.Event()
        self.finished = threading.Event()
        self.replayed = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def pending(self) -> int:
        return max(len(self.candles) - self.bar_count - self.replayed, 0)

    def run(self) -> Optional[Snapshot]:
        """Replay synchronously. Returns the last snapshot produced."""
        try:
            if not self.candles:
                logger.warning("Replay: no candles to replay")
                return None

            seed = self.candles[:self.bar_count]
            rest = self.candles[self.bar_count:]
            first_close = self.candles[0].close
            snap = self.session.seed(seed)

            if not rest:
                logger.warning(
                    f"Replay: only {len(self.candles)} candles, "
                    f"nothing left after seeding {self.bar_count}"
                )
                return snap

            logger.info(f"Replay: {len(rest)} candles at {self.delay_sec * 1000:.0f}ms pacing")
            for candle in rest:
                if self.stop_event.wait(self.delay_sec):
                    logger.info(f"Replay stopped after {self.replayed}/{len(rest)} candles")
                    break
                snap = self.session.on_candle(candle, first_close=first_close)
                self.replayed += 1
            else:
                logger.info(f"Replay complete: {self.session.status_line()}")
            return snap
        finally:
            self.finished.set()

    def start(self) -> None:
        # a stop() issued before start() still cancels the run
        self.finished.clear()
        self._thread = threading.Thread(target=self._run_safely, name="replay", daemon=True)
        self._thread.start()

    def _run_safely(self) -> None:
        try:
            self.run()
        except Exception as e:
            logger.error(f"Replay crashed: {e}", exc_info=True)

    def stop(self) -> None:
        self.stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread:
            self._thread.join(timeout)
            return not self._thread.is_alive()
        return True
