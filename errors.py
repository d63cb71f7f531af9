"""Error taxonomy for the paper trading pipeline.

None of these are fatal to the process: the session drops the offending
update and keeps the last valid state.
"""


class PaperTradeError(Exception):
    """Base class for every error raised by this package."""


class MalformedCandle(PaperTradeError):
    """A feed record could not be parsed into a valid candle."""


class InsufficientData(PaperTradeError):
    """The candle window is too short for pivot detection."""

    def __init__(self, available: int, required: int):
        super().__init__(f"need at least {required} candles, got {available}")
        self.available = available
        self.required = required


class FeedMismatch(PaperTradeError):
    """A streaming message is not an OHLC update for the configured pair."""


class InvalidTransition(PaperTradeError, ValueError):
    """A position lifecycle moved between two phases that are not connected."""


class KrakenAPIError(PaperTradeError):
    """The Kraken REST API answered with a non-empty error list."""
