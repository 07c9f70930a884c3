"""
Market data source backed by an exchange 24h ticker REST endpoint.

The payload format is Binance-compatible (``/api/v3/ticker/24hr``):
``lastPrice``, ``volume``, ``highPrice``, ``lowPrice`` and
``priceChangePercent``, all as strings. Symbols in the agent use the
"BASE/QUOTE" form and are converted to the exchange form ("BASEQUOTE").
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp
from asyncio_throttle import Throttler

from flashtrade.agents.base import MarketDataSource
from flashtrade.agents.data_structures import MarketSnapshot
from flashtrade.errors import DataUnavailable, InitializationError
from flashtrade.utils.logging import get_logger

logger = get_logger(__name__)


def to_exchange_symbol(symbol: str) -> str:
    return symbol.replace("/", "").replace("-", "").upper()


class TickerMarketDataSource(MarketDataSource):
    """
    Fetches 24h ticker snapshots over HTTP.

    Every request goes through a rate limiter and is bounded by
    ``timeout`` seconds, so a slow exchange never blocks the tick loop.
    """

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 5.0,
        rate_limit: int = 10,
        period: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the ticker source.

        Args:
            base_url: Exchange REST root.
            timeout: Total timeout per request in seconds.
            rate_limit: Requests allowed per ``period``.
            period: Rate limit window in seconds.
            session: Optional externally managed aiohttp session.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.throttler = Throttler(rate_limit, period)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, market_data_settings) -> "TickerMarketDataSource":
        return cls(
            base_url=market_data_settings.BASE_URL,
            timeout=market_data_settings.TIMEOUT_SECONDS,
            rate_limit=market_data_settings.RATE_LIMIT,
            period=market_data_settings.RATE_PERIOD_SECONDS,
        )

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        try:
            await self._get_json("/api/v3/ping")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self.disconnect()
            raise InitializationError(f"market data source at {self.base_url} unreachable: {e}") from e
        logger.info("Connected to market data source", base_url=self.base_url)

    async def disconnect(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def get_snapshot(self, symbol: str) -> MarketSnapshot:
        if self._session is None:
            raise DataUnavailable(symbol, "market data source is not connected")
        try:
            data = await self._get_json(
                "/api/v3/ticker/24hr", params={"symbol": to_exchange_symbol(symbol)}
            )
        except asyncio.TimeoutError:
            raise DataUnavailable(symbol, f"request timed out after {self.timeout.total}s") from None
        except aiohttp.ClientError as e:
            raise DataUnavailable(symbol, f"HTTP error: {e}") from e

        return self.parse_ticker(symbol, data)

    @staticmethod
    def parse_ticker(symbol: str, data: Any) -> MarketSnapshot:
        """
        Validate a raw ticker payload into a MarketSnapshot.

        Raises:
            DataUnavailable: If the payload is missing fields or out of range.
        """
        if not isinstance(data, dict):
            raise DataUnavailable(symbol, f"unexpected ticker payload type {type(data).__name__}")
        try:
            change_pct = data.get("priceChangePercent")
            close_time = data.get("closeTime")
            return MarketSnapshot(
                symbol=symbol,
                price=float(data["lastPrice"]),
                volume=float(data["volume"]),
                timestamp=(
                    datetime.fromtimestamp(close_time / 1000, tz=timezone.utc)
                    if close_time is not None
                    else datetime.now(timezone.utc)
                ),
                high_24h=_optional_float(data.get("highPrice")),
                low_24h=_optional_float(data.get("lowPrice")),
                change_24h=float(change_pct) / 100 if change_pct is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataUnavailable(symbol, f"malformed ticker payload: {e}") from e

    async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        async with self.throttler:
            async with self._session.get(
                f"{self.base_url}{path}", params=params, timeout=self.timeout
            ) as response:
                response.raise_for_status()
                return await response.json()


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
