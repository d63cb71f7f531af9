"""
Support/Resistance Paper Trader
===============================
Backtest: fetch history → seed window → paced replay
Live:     fetch history → seed window → Kraken OHLC stream
"""

import logging
import signal
import sys
import threading
import time
from typing import List, Optional

import config
from candles import Candle
from kraken_api import KrakenClient
from kraken_websocket import KrakenWebSocket
from paper_trader import TradingSession
from position_manager import StrategySettings
from replay import ReplayDriver

logging.basicConfig(
    level=getattr(config, "LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(config.LOG_FILE),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)


class PaperTradingBot:
    def __init__(self) -> None:
        self.running               = False
        self.stopped               = False
        self.last_status_sec       = 0.0
        self.last_health_check_sec = 0.0

        self.client:  Optional[KrakenClient]     = None
        self.session: Optional[TradingSession]   = None
        self.replay:  Optional[ReplayDriver]     = None
        self.ws:      Optional[KrakenWebSocket]  = None

    # =========================================================================
    # INITIALIZE
    # =========================================================================

    def initialize(self) -> bool:
        try:
            logger.info("=" * 80)
            logger.info(
                f"PAPER TRADER INITIALIZING ({'BACKTEST' if config.IS_BACKTEST else 'LIVE'} "
                f"{config.PAIR})"
            )
            logger.info("=" * 80)

            self.client  = KrakenClient()
            self.session = TradingSession(
                settings=StrategySettings.from_config(),
                bar_count=config.BAR_COUNT,
                pair=config.PAIR,
            )
            return True

        except Exception:
            logger.exception("Failed to initialize bot")
            return False

    # =========================================================================
    # START
    # =========================================================================

    def start(self) -> bool:
        try:
            if not self.client or not self.session:
                logger.error("Bot components not initialized")
                return False

            candles = self.client.fetch_candles()
            if not candles:
                logger.error("No historical candles available")
                return False

            if config.IS_BACKTEST:
                self._start_backtest(candles)
            elif not self._start_live(candles):
                return False

            self.running = True
            logger.info("BOT RUNNING")
            return True

        except Exception:
            logger.exception("Error starting bot")
            return False

    def _start_backtest(self, candles: List[Candle]) -> None:
        self.replay = ReplayDriver(
            self.session,
            candles,
            bar_count=config.BAR_COUNT,
            delay_ms=config.DELAY_TIME_MS,
        )
        self.replay.start()

    def _start_live(self, candles: List[Candle]) -> bool:
        self.session.seed(candles[-config.BAR_COUNT:])
        self.session.start()
        return self._connect_stream()

    def _connect_stream(self) -> bool:
        self.ws = KrakenWebSocket()
        if not self.ws.connect(timeout=30):
            logger.error("Failed to connect WebSocket")
            return False
        self.ws.subscribe_ohlc(
            config.PAIR,
            interval=config.OHLC_INTERVAL_MIN,
            callback=self.session.submit_message,
        )
        return True

    # =========================================================================
    # STREAM SUPERVISOR
    # =========================================================================

    def maybe_supervise_stream(self) -> None:
        if not self.ws:
            return

        now = time.time()
        if now - self.last_health_check_sec < config.HEALTH_CHECK_INTERVAL_SEC:
            return
        self.last_health_check_sec = now

        if self.ws.is_healthy(timeout_seconds=config.WS_STALE_SECONDS):
            return

        logger.warning(f"WS stale ({config.WS_STALE_SECONDS}s). Restarting...")
        self.ws.disconnect()
        if not self._connect_stream():
            logger.error("Stream restart failed, will retry on next health check")

    def maybe_log_status(self) -> None:
        now = time.time()
        if now - self.last_status_sec < config.STATUS_LOG_INTERVAL_SEC:
            return
        self.last_status_sec = now
        logger.info(f"Status: {self.session.status_line()}")

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self) -> None:
        if not self.session:
            logger.error("Bot components not initialized")
            return

        logger.info("Main loop active (250ms tick)")

        while self.running:
            try:
                time.sleep(0.25)

                if self.replay and self.replay.finished.is_set():
                    logger.info("Backtest finished")
                    break

                self.maybe_supervise_stream()
                self.maybe_log_status()

            except KeyboardInterrupt:
                logger.info("Keyboard interrupt received")
                break
            except Exception:
                logger.exception("Error in main loop")
                time.sleep(1.0)

        self.running = False

    # =========================================================================
    # STOP
    # =========================================================================

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        logger.info("Stopping paper trader...")
        self.running = False

        if self.replay:
            self.replay.stop()
            self.replay.join(timeout=5)
        if self.ws:
            self.ws.disconnect()
        if self.session:
            self.session.stop()
            snap = self.session.snapshot()
            if snap.has_position:
                logger.warning(
                    f"Open {snap.position_side.value.upper()} position left on shutdown "
                    f"(current pnl {snap.pnl.current:+.2f})"
                )
            logger.info(f"Final: {self.session.status_line()}")

        logger.info("Paper trader stopped")


# =============================================================================
# ENTRY POINT
# =============================================================================

def main() -> None:
    bot = PaperTradingBot()

    if threading.current_thread() is threading.main_thread():
        def signal_handler(signum, frame):
            logger.info("Shutdown signal received")
            bot.stop()
            sys.exit(0)
        signal.signal(signal.SIGINT,  signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    if not bot.initialize():
        sys.exit(1)
    if not bot.start():
        sys.exit(1)

    try:
        bot.run()
    except Exception:
        logger.exception("Fatal error in main")
        sys.exit(1)
    finally:
        bot.stop()


if __name__ == "__main__":
    main()
