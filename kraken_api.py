"""
Kraken public REST client
=========================
Historical OHLC for warmup and backtests. No credentials required.

Response shape:
    {"error": [], "result": {"XXBTZUSD": [[time, o, h, l, c, vwap, volume, count], ...],
                             "last": 1700000000}}
"""

import logging
from typing import Dict, List, Optional

import requests

import config
from candles import Candle, normalize_batch
from errors import KrakenAPIError
from retry import retry

logger = logging.getLogger(__name__)


class KrakenClient:
    def __init__(
        self,
        base_url: str = config.KRAKEN_REST_URL,
        timeout: float = config.REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @retry(
        exceptions=(requests.ConnectionError, requests.Timeout),
        max_attempts=config.MAX_REQUEST_RETRIES,
    )
    def _get(self, params: Dict) -> Dict:
        resp = self.session.get(self.base_url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_ohlc(
        self,
        pair: str = config.REST_PAIR,
        interval: int = config.OHLC_INTERVAL_MIN,
        since: Optional[int] = None,
    ) -> List[list]:
        """
        Raw OHLC rows for ``pair``.

        Raises:
            KrakenAPIError: Kraken reported errors or returned no series
            requests.RequestException: transport failure after retries
        """
        params = {"pair": pair, "interval": interval}
        if since is not None:
            params["since"] = since

        payload = self._get(params)
        errors = payload.get("error") or []
        if errors:
            raise KrakenAPIError(", ".join(str(e) for e in errors))

        result = payload.get("result") or {}
        # series key is Kraken's internal pair name (XBTUSD -> XXBTZUSD)
        series = [v for k, v in result.items() if k != "last" and isinstance(v, list)]
        if not series:
            raise KrakenAPIError(f"no OHLC series for {pair}")
        return series[0]

    def fetch_candles(
        self,
        pair: str = config.REST_PAIR,
        interval: int = config.OHLC_INTERVAL_MIN,
        since: Optional[int] = None,
    ) -> List[Candle]:
        rows = self.get_ohlc(pair, interval, since)
        candles = normalize_batch(rows)
        logger.info(f"Fetched {len(candles)} {interval}m candles for {pair}")
        return candles
