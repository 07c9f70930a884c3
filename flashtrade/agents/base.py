"""
Defines the collaborator interfaces the trading agent depends on.

The agent never talks to an exchange, a model or a chain directly. It goes
through three abstract collaborators:

- ``MarketDataSource`` supplies validated ``MarketSnapshot`` objects.
- ``Predictor`` turns a fixed-length price sequence into a forecast price.
- ``ExecutionGateway`` settles BUY/SELL decisions and owns the portfolio.

Concrete implementations live in ``flashtrade.data.providers``,
``flashtrade.models`` and ``flashtrade.execution``.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from .data_structures import MarketSnapshot, PortfolioState, TradingDecision
from flashtrade.models.price_history import PriceHistory


class MarketDataSource(ABC):
    """
    Abstract source of market snapshots.

    Implementations must bound every call with a timeout and raise
    ``DataUnavailable`` when no recent data exists for a symbol.
    """

    async def connect(self) -> None:
        """Establish any connection the source needs. Default: nothing."""

    async def disconnect(self) -> None:
        """Release resources held by the source. Default: nothing."""

    @abstractmethod
    async def get_snapshot(self, symbol: str) -> MarketSnapshot:
        """
        Fetch the latest snapshot for a symbol.

        Args:
            symbol: The pair or ticker to fetch.

        Returns:
            A validated MarketSnapshot.

        Raises:
            DataUnavailable: If no recent data can be supplied.
        """


class Predictor(ABC):
    """
    Abstract price predictor.

    The predictor owns the price history it forecasts from. ``forecast``
    records the latest snapshot into that bounded history and predicts from
    the most recent ``sequence_length`` prices. The history holds up to
    ``history_capacity`` prices per symbol so it can also feed training.

    Incremental training is the only operation that writes model state; it
    is guarded by a single-slot lock and a second concurrent request is a
    no-op. Inference never takes the lock.
    """

    def __init__(self, sequence_length: int = 60, history_capacity: Optional[int] = None):
        if sequence_length < 1:
            raise ValueError(f"sequence_length must be at least 1, got {sequence_length}")
        if history_capacity is not None and history_capacity < sequence_length:
            raise ValueError(
                f"history_capacity ({history_capacity}) must be at least sequence_length ({sequence_length})"
            )
        self.sequence_length = sequence_length
        self.history = PriceHistory(capacity=history_capacity or sequence_length)
        self._training_guard = asyncio.Lock()

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the model for inference."""

    @abstractmethod
    async def predict(self, price_sequence: Sequence[float]) -> float:
        """
        Predict the next price from an ordered sequence of recent prices.

        Raises:
            ModelNotReady: If called before ``initialize``.
            PredictionFailure: If no forecast can be produced.
        """

    async def forecast(self, snapshot: MarketSnapshot) -> float:
        """Record the snapshot price and predict from the symbol's history."""
        self.history.append(snapshot.symbol, snapshot.price)
        return await self.predict(self.history.sequence(snapshot.symbol)[-self.sequence_length:])

    @property
    def is_training(self) -> bool:
        return self._training_guard.locked()

    @property
    def supports_training(self) -> bool:
        return type(self)._train is not Predictor._train

    async def train(self, prices: Sequence[float]) -> bool:
        """
        Run one incremental training pass.

        Returns:
            True if training ran, False if another training pass was already
            in progress and this request was dropped.
        """
        if self._training_guard.locked():
            return False
        async with self._training_guard:
            await self._train(prices)
        return True

    async def _train(self, prices: Sequence[float]) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support training")

    async def close(self) -> None:
        """Release model resources. Default: nothing."""


class ExecutionGateway(ABC):
    """
    Abstract settlement layer.

    The gateway owns the portfolio. It must apply its own slippage and
    deadline protection, and report handled failures by returning False.
    Exceptions are reserved for connectivity loss.
    """

    async def connect(self) -> None:
        """Establish the settlement connection. Default: nothing."""

    async def disconnect(self) -> None:
        """Tear down the settlement connection. Default: nothing."""

    @abstractmethod
    async def get_portfolio(self) -> PortfolioState:
        """Return the current balance and positions."""

    @abstractmethod
    async def execute_trade(self, decision: TradingDecision, symbol: str) -> bool:
        """
        Settle a sized BUY or SELL decision.

        Returns:
            True on success, False for a handled execution failure.

        Raises:
            ExecutionFailure: If the settlement layer is unreachable.
        """
