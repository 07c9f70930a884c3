"""
Paper-trading execution gateway.

Settles decisions against an in-memory portfolio instead of a chain. It
applies the same protections a live gateway must: a slippage bound relative
to the decision's reference price and a settlement deadline. Handled
failures return False; only a missing connection raises.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from flashtrade.agents.base import ExecutionGateway, MarketDataSource
from flashtrade.agents.data_structures import Action, PortfolioState, Position, TradingDecision
from flashtrade.errors import DataUnavailable, ExecutionFailure
from flashtrade.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Fill:
    """A settled paper trade."""
    symbol: str
    action: Action
    quote_amount: float
    base_amount: float
    price: float
    mev_protected: bool
    filled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PaperExecutionGateway(ExecutionGateway):
    """
    In-memory settlement layer that owns the portfolio.

    BUY spends ``decision.amount`` of balance on the base asset. SELL sells up
    to ``decision.amount`` worth of the held position; with no position there
    is nothing to sell and the trade is rejected.
    """

    def __init__(
        self,
        starting_balance: float = 10000.0,
        slippage_tolerance: float = 0.005,
        deadline_seconds: float = 300.0,
        mev_protection: bool = True,
        price_source: Optional[MarketDataSource] = None,
        clock=time.monotonic,
    ):
        """
        Args:
            starting_balance: Initial quote balance.
            slippage_tolerance: Max relative deviation between the decision's
                reference price and the fill price.
            deadline_seconds: A trade not settled within this window is
                rejected.
            mev_protection: Route through the protected (parallel) path; only
                recorded on fills here.
            price_source: Optional live quote source for fill prices. Without
                one, trades fill at the reference price.
            clock: Monotonic clock, injectable for tests.
        """
        self.portfolio = PortfolioState(balance=starting_balance)
        self.slippage_tolerance = slippage_tolerance
        self.deadline_seconds = deadline_seconds
        self.mev_protection = mev_protection
        self.price_source = price_source
        self.clock = clock
        self.fills: List[Fill] = []
        self.connected = False

    @classmethod
    def from_settings(cls, execution_settings, price_source: Optional[MarketDataSource] = None):
        return cls(
            starting_balance=execution_settings.STARTING_BALANCE,
            slippage_tolerance=execution_settings.SLIPPAGE_TOLERANCE,
            deadline_seconds=execution_settings.DEADLINE_SECONDS,
            mev_protection=execution_settings.MEV_PROTECTION,
            price_source=price_source,
        )

    async def connect(self) -> None:
        self.connected = True
        logger.info("Paper gateway connected", balance=self.portfolio.balance)

    async def disconnect(self) -> None:
        self.connected = False
        logger.info("Paper gateway disconnected")

    async def get_portfolio(self) -> PortfolioState:
        self._require_connection()
        return self.portfolio.snapshot()

    async def execute_trade(self, decision: TradingDecision, symbol: str) -> bool:
        self._require_connection()
        started = self.clock()

        if not decision.is_actionable or not decision.amount:
            logger.warning("Rejected trade without action or amount", symbol=symbol, action=decision.action.value)
            return False
        if not decision.reference_price:
            logger.warning("Rejected trade without reference price", symbol=symbol)
            return False

        fill_price = await self._fill_price(decision, symbol)
        if fill_price is None:
            return False

        slippage = abs(fill_price - decision.reference_price) / decision.reference_price
        if slippage > self.slippage_tolerance:
            logger.warning(
                "Rejected trade: slippage above tolerance",
                symbol=symbol,
                slippage=round(slippage, 6),
                tolerance=self.slippage_tolerance,
            )
            return False

        if self.clock() - started > self.deadline_seconds:
            logger.warning("Rejected trade: deadline passed", symbol=symbol, deadline=self.deadline_seconds)
            return False

        if decision.action is Action.BUY:
            return self._buy(symbol, decision.amount, fill_price)
        return self._sell(symbol, decision.amount, fill_price)

    async def _fill_price(self, decision: TradingDecision, symbol: str) -> Optional[float]:
        if self.price_source is None:
            return decision.reference_price
        try:
            snapshot = await self.price_source.get_snapshot(symbol)
        except DataUnavailable as e:
            logger.warning("Rejected trade: no quote for fill", symbol=symbol, error=str(e))
            return None
        return snapshot.price

    def _buy(self, symbol: str, amount: float, price: float) -> bool:
        if amount > self.portfolio.balance:
            logger.warning("Rejected BUY: insufficient balance", symbol=symbol, amount=amount,
                           balance=self.portfolio.balance)
            return False
        base_amount = amount / price
        position = self.portfolio.positions.setdefault(symbol, Position())
        position.amount += base_amount
        position.value = position.amount * price
        self.portfolio.balance -= amount
        self._record(symbol, Action.BUY, amount, base_amount, price)
        return True

    def _sell(self, symbol: str, amount: float, price: float) -> bool:
        position = self.portfolio.positions.get(symbol)
        if position is None or position.amount <= 0:
            logger.warning("Rejected SELL: no position", symbol=symbol)
            return False
        base_amount = min(position.amount, amount / price)
        quote_amount = base_amount * price
        position.amount -= base_amount
        position.value = position.amount * price
        if position.amount <= 1e-12:
            del self.portfolio.positions[symbol]
        self.portfolio.balance += quote_amount
        self._record(symbol, Action.SELL, quote_amount, base_amount, price)
        return True

    def _record(self, symbol: str, action: Action, quote_amount: float, base_amount: float, price: float):
        self.fills.append(Fill(
            symbol=symbol,
            action=action,
            quote_amount=quote_amount,
            base_amount=base_amount,
            price=price,
            mev_protected=self.mev_protection,
        ))
        logger.info(
            "Paper trade settled",
            symbol=symbol,
            action=action.value,
            quote_amount=round(quote_amount, 8),
            price=price,
            balance=round(self.portfolio.balance, 8),
        )

    def _require_connection(self):
        if not self.connected:
            raise ExecutionFailure("paper gateway is not connected")
