"""
Simulated market data source for safe testing without network access.

Prices follow a bounded random walk per symbol, and a rolling window of
recent prices stands in for the 24h high/low/change figures.
"""
import random
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, Iterable, Optional

from flashtrade.agents.base import MarketDataSource
from flashtrade.agents.data_structures import MarketSnapshot
from flashtrade.errors import DataUnavailable

DEFAULT_BASE_PRICES = {
    "ETH/USDT": 2500.0,
    "BTC/USDT": 60000.0,
    "METIS/USDT": 45.0,
    "SOL/USDT": 150.0,
}


class SimulatedMarketDataSource(MarketDataSource):
    """Random-walk market data with injectable outages."""

    def __init__(
        self,
        base_prices: Optional[Dict[str, float]] = None,
        max_move: float = 0.02,
        window: int = 24,
        seed: Optional[int] = None,
        outages: Iterable[str] = (),
    ):
        """
        Args:
            base_prices: Starting price per symbol; unknown symbols start at 100.
            max_move: Largest per-call relative move.
            window: Number of recent prices used for the 24h figures.
            seed: RNG seed for reproducible walks.
            outages: Symbols that raise DataUnavailable until removed.
        """
        self.base_prices = dict(base_prices or DEFAULT_BASE_PRICES)
        self.max_move = max_move
        self.window = window
        self.outages = set(outages)
        self._random = random.Random(seed)
        self._prices: Dict[str, Deque[float]] = {}
        self.calls = 0

    async def get_snapshot(self, symbol: str) -> MarketSnapshot:
        self.calls += 1
        if symbol in self.outages:
            raise DataUnavailable(symbol, "simulated outage")

        base_price = self.base_prices.get(symbol, 100.0)
        history = self._prices.get(symbol)
        if history is None:
            history = self._prices[symbol] = deque([base_price], maxlen=self.window)

        price = history[-1] * (1 + self._random.uniform(-self.max_move, self.max_move))
        # Keep the walk within 50% of the base price
        price = max(base_price * 0.5, min(base_price * 1.5, price))
        history.append(round(price, 8))

        return MarketSnapshot(
            symbol=symbol,
            price=history[-1],
            volume=round(self._random.uniform(1_000, 1_000_000), 2),
            timestamp=datetime.now(timezone.utc),
            high_24h=max(history),
            low_24h=min(history),
            change_24h=(history[-1] - history[0]) / history[0],
        )

    def last_price(self, symbol: str) -> Optional[float]:
        history = self._prices.get(symbol)
        return history[-1] if history else None
