"""
config.py - Single source of truth for paper trader parameters.
Naming: UPPER_SNAKE_CASE throughout. Every value can be overridden from the
environment (or a .env file next to the process).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ─────────────────────────────────────────────
# INSTRUMENT
# ─────────────────────────────────────────────
PAIR              = os.getenv("PAIR", "XBT/USD")     # WebSocket pair name
REST_PAIR         = os.getenv("REST_PAIR", "XBTUSD") # REST OHLC pair name
OHLC_INTERVAL_MIN = int(os.getenv("OHLC_INTERVAL_MIN", "1"))

# ─────────────────────────────────────────────
# MODE
# ─────────────────────────────────────────────
IS_BACKTEST = _env_bool("IS_BACKTEST", True)

# ─────────────────────────────────────────────
# TRADE PARAMETERS
# ─────────────────────────────────────────────
PROFIT_TARGET = float(os.getenv("PROFIT_TARGET", "0.005"))  # fraction of entry
STOP_LOSS     = float(os.getenv("STOP_LOSS", "0.005"))      # fraction of entry

# every_bar: reselect entry points on every flat candle (backtest)
# when_absent: select only while a side has no entry point (live)
ENTRY_REFRESH        = os.getenv(
    "ENTRY_REFRESH", "every_bar" if IS_BACKTEST else "when_absent")
CLEAR_ENTRY_ON_RESET = _env_bool("CLEAR_ENTRY_ON_RESET", False)

# ─────────────────────────────────────────────
# WINDOW / REPLAY
# ─────────────────────────────────────────────
BAR_COUNT     = int(os.getenv("BAR_COUNT", "120"))
DELAY_TIME_MS = int(os.getenv("DELAY_TIME_MS", os.getenv("STEP_TIME_MS", "100")))

# ─────────────────────────────────────────────
# KRAKEN ENDPOINTS
# ─────────────────────────────────────────────
KRAKEN_REST_URL = os.getenv("KRAKEN_REST_URL", "https://api.kraken.com/0/public/OHLC")
KRAKEN_WS_URL   = os.getenv("KRAKEN_WS_URL", "wss://ws.kraken.com")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))  # HTTP timeout seconds
MAX_REQUEST_RETRIES = int(os.getenv("MAX_REQUEST_RETRIES", "3"))

# ─────────────────────────────────────────────
# HEALTH CHECK / SUPERVISOR
# ─────────────────────────────────────────────
WS_STALE_SECONDS          = float(os.getenv("WS_STALE_SECONDS", "90"))
HEALTH_CHECK_INTERVAL_SEC = float(os.getenv("HEALTH_CHECK_INTERVAL_SEC", "15"))
STATUS_LOG_INTERVAL_SEC   = float(os.getenv("STATUS_LOG_INTERVAL_SEC", "60"))

# ─────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE  = os.getenv("LOG_FILE", "paper_trader.log")
