"""
Core data structures for the FlashTrade agent.

This module defines the records that flow through a tick: the market snapshot
coming in from the data source, the trading decision produced by the signal
components, the portfolio view used for sizing, the agent configuration, and
the audit records kept for every symbol on every tick.
"""
import copy
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from flashtrade.errors import ConfigurationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Action(str, Enum):
    """Discrete trading actions."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class AgentState(str, Enum):
    """Lifecycle states of an AgentRuntime. STOPPED is terminal."""
    CREATED = "created"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Represents a snapshot of market data for a single tradable symbol.

    Attributes:
        symbol: The pair or ticker identifier, e.g. "ETH/USDT".
        price: The current market price. Must be positive.
        volume: The traded volume over the last 24h. Must be non-negative.
        timestamp: When the snapshot was taken.
        high_24h: Optional 24h high.
        low_24h: Optional 24h low.
        change_24h: Optional 24h price change as a fraction (0.03 = +3%).
    """
    symbol: str
    price: float
    volume: float
    timestamp: datetime = field(default_factory=utc_now)
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    change_24h: Optional[float] = None

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("snapshot symbol must not be empty")
        if not _finite(self.price) or self.price <= 0:
            raise ValueError(f"{self.symbol}: price must be a positive number, got {self.price!r}")
        if not _finite(self.volume) or self.volume < 0:
            raise ValueError(f"{self.symbol}: volume must be non-negative, got {self.volume!r}")
        for name in ("high_24h", "low_24h", "change_24h"):
            value = getattr(self, name)
            if value is not None and not _finite(value):
                raise ValueError(f"{self.symbol}: {name} must be finite, got {value!r}")


@dataclass(frozen=True)
class TradingDecision:
    """
    The audit record of what the agent decided for one symbol on one tick.

    ``amount`` is None for HOLD. BUY/SELL decisions come out of the decision
    engine unsized and get their amount from ``with_amount`` once the
    position sizer has run.

    Attributes:
        action: BUY, SELL or HOLD.
        confidence: Trust in the underlying prediction, in [0, 1].
        reason: Human readable explanation kept for the audit trail.
        amount: Order size in quote currency, only for BUY/SELL.
        symbol: The symbol the decision applies to.
        reference_price: Market price at decision time.
        predicted_price: The forecast the decision acted on.
        degraded: True when the predictor failed and this is the fallback HOLD.
        timestamp: When the decision was made.
    """
    action: Action
    confidence: float
    reason: str
    amount: Optional[float] = None
    symbol: Optional[str] = None
    reference_price: Optional[float] = None
    predicted_price: Optional[float] = None
    degraded: bool = False
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.action is Action.HOLD and self.amount is not None:
            raise ValueError("HOLD decisions carry no amount")
        if self.amount is not None and (not _finite(self.amount) or self.amount < 0):
            raise ValueError(f"amount must be non-negative, got {self.amount}")

    @property
    def is_actionable(self) -> bool:
        return self.action is not Action.HOLD

    def with_amount(self, amount: float) -> "TradingDecision":
        """Return a sized copy of an actionable decision."""
        if not self.is_actionable:
            raise ValueError("cannot size a HOLD decision")
        return replace(self, amount=amount)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "amount": self.amount,
            "reason": self.reason,
            "symbol": self.symbol,
            "reference_price": self.reference_price,
            "predicted_price": self.predicted_price,
            "degraded": self.degraded,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Position:
    """Holdings of a single symbol: base units and their quote value."""
    amount: float = 0.0
    value: float = 0.0


@dataclass
class PortfolioState:
    """
    Balance and positions as reported by the execution layer.

    The runtime only ever reads a ``snapshot()`` of this; mutation belongs to
    the execution gateway.
    """
    balance: float
    positions: Dict[str, Position] = field(default_factory=dict)

    def __post_init__(self):
        if not _finite(self.balance) or self.balance < 0:
            raise ValueError(f"balance must be non-negative, got {self.balance}")

    def position(self, symbol: str) -> Position:
        return self.positions.get(symbol, Position())

    def snapshot(self) -> "PortfolioState":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class AgentConfig:
    """
    Configuration for a trading agent, validated once at construction.

    Attributes:
        name: Identifier used in logs and audit records.
        risk_tolerance: Fraction of balance at risk per trade, in [0, 1].
        max_position_size: Cap on a single order as a fraction of balance.
        min_confidence: Decisions below this confidence always HOLD.
        tick_interval: Seconds between ticks. Must be positive.
        symbols: Ordered symbols to monitor.
        max_concurrency: 1 processes symbols sequentially; more runs that many
            symbol units at once.
    """
    name: str
    risk_tolerance: float
    max_position_size: float
    min_confidence: float
    tick_interval: float = 30.0
    symbols: Tuple[str, ...] = ()
    max_concurrency: int = 1

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("agent name must not be empty")
        for name in ("risk_tolerance", "max_position_size", "min_confidence"):
            value = getattr(self, name)
            if not _finite(value) or not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value!r}")
        if not _finite(self.tick_interval) or self.tick_interval <= 0:
            raise ConfigurationError(f"tick_interval must be positive, got {self.tick_interval!r}")
        if self.max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be at least 1, got {self.max_concurrency}")
        # Lists are accepted and frozen into a tuple
        object.__setattr__(self, "symbols", tuple(self.symbols))
        if len(set(self.symbols)) != len(self.symbols):
            raise ConfigurationError(f"duplicate symbols in {list(self.symbols)}")

    @classmethod
    def from_settings(cls, settings) -> "AgentConfig":
        """Build an AgentConfig from the aggregated pydantic settings."""
        agent = settings.agent
        return cls(
            name=agent.NAME,
            risk_tolerance=agent.RISK_TOLERANCE,
            max_position_size=agent.MAX_POSITION_SIZE,
            min_confidence=agent.MIN_CONFIDENCE,
            tick_interval=agent.TICK_INTERVAL_SECONDS,
            symbols=tuple(agent.SYMBOLS),
            max_concurrency=agent.MAX_CONCURRENCY,
        )


@dataclass(frozen=True)
class DecisionRecord:
    """
    One audit fact: what happened to one symbol on one tick.

    ``decision`` is None when the symbol was skipped before a decision could
    be made (e.g. no market data). ``executed`` is None when nothing was sent
    to the execution gateway.
    """
    tick: int
    symbol: str
    decision: Optional[TradingDecision]
    executed: Optional[bool] = None
    error: Optional[str] = None
    recorded_at: datetime = field(default_factory=utc_now)

    @property
    def action(self) -> Optional[Action]:
        return self.decision.action if self.decision else None


@dataclass
class TickReport:
    """Summary of one full pass over the configured symbols."""
    tick: int
    started_at: datetime
    finished_at: Optional[datetime] = None
    records: List[DecisionRecord] = field(default_factory=list)
    data_failures: List[str] = field(default_factory=list)
    systemic_outage: bool = False

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


def _finite(value: Any) -> bool:
    try:
        return math.isfinite(value)
    except TypeError:
        return False
