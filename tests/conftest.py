"""
Pytest configuration and shared fixtures for the FlashTrade test suite.

Collaborators here are small in-memory fakes so the runtime can be driven
tick by tick without network access or real models.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from flashtrade.agents.base import ExecutionGateway, MarketDataSource, Predictor
from flashtrade.agents.data_structures import AgentConfig, MarketSnapshot, PortfolioState, TradingDecision
from flashtrade.errors import DataUnavailable, PredictionFailure


# ==============================
# Pytest Configuration
# ==============================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for component interactions"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take longer to run"
    )


# ==============================
# Data Fixtures
# ==============================

FIXED_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_snapshot(
    symbol: str = "ETH/USDT",
    price: float = 100.0,
    volume: float = 1000.0,
    high_24h: Optional[float] = 102.0,
    low_24h: Optional[float] = 98.0,
    change_24h: Optional[float] = 0.03,
) -> MarketSnapshot:
    return MarketSnapshot(
        symbol=symbol,
        price=price,
        volume=volume,
        timestamp=FIXED_TIME,
        high_24h=high_24h,
        low_24h=low_24h,
        change_24h=change_24h,
    )


@pytest.fixture
def snapshot_factory():
    """Provides the snapshot builder; defaults give confidence 0.768."""
    return make_snapshot


@pytest.fixture
def agent_config() -> AgentConfig:
    """Provides a default AgentConfig for tests."""
    return AgentConfig(
        name="test-agent",
        risk_tolerance=0.1,
        max_position_size=0.05,
        min_confidence=0.5,
        tick_interval=0.01,
        symbols=("ETH/USDT", "BTC/USDT"),
    )


# ==============================
# Fake Collaborators
# ==============================

class FakeMarketData(MarketDataSource):
    """Serves fixed snapshots; symbols in ``unavailable`` raise DataUnavailable."""

    def __init__(self, snapshots: Optional[Dict[str, MarketSnapshot]] = None, unavailable=()):
        self.snapshots = dict(snapshots or {})
        self.unavailable = set(unavailable)
        self.requests: List[str] = []
        self.connected = False
        self.fail_connect = False

    async def connect(self):
        if self.fail_connect:
            raise ConnectionError("exchange down")
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def get_snapshot(self, symbol):
        self.requests.append(symbol)
        if symbol in self.unavailable or symbol not in self.snapshots:
            raise DataUnavailable(symbol)
        return self.snapshots[symbol]


class FakePredictor(Predictor):
    """Predicts ``price * multiplier`` per symbol, or fails for symbols in ``failing``."""

    def __init__(self, multipliers: Optional[Dict[str, float]] = None, failing=(), history_capacity=None):
        super().__init__(sequence_length=5, history_capacity=history_capacity)
        self.multipliers = dict(multipliers or {})
        self.failing = set(failing)
        self.initialized = False
        self.closed = False

    async def initialize(self):
        self.initialized = True

    async def forecast(self, snapshot):
        if snapshot.symbol in self.failing:
            raise PredictionFailure("model unavailable")
        self.history.append(snapshot.symbol, snapshot.price)
        return snapshot.price * self.multipliers.get(snapshot.symbol, 1.0)

    async def predict(self, price_sequence):
        return price_sequence[-1]

    async def close(self):
        self.closed = True


class FakeExecution(ExecutionGateway):
    """Records every trade; result is ``succeed`` unless overridden per symbol."""

    def __init__(self, balance: float = 10000.0, succeed: bool = True):
        self.portfolio = PortfolioState(balance=balance)
        self.succeed = succeed
        self.results: Dict[str, object] = {}
        self.trades: List[TradingDecision] = []
        self.portfolio_reads = 0
        self.connected = False
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()
        self.completed = 0

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def get_portfolio(self):
        self.portfolio_reads += 1
        return self.portfolio

    async def execute_trade(self, decision, symbol):
        self.trades.append(decision)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.get(symbol, self.succeed)
        if isinstance(result, Exception):
            raise result
        self.completed += 1
        return result


@pytest.fixture
def fake_market_data(snapshot_factory):
    """Provides market data for ETH/USDT and BTC/USDT."""
    return FakeMarketData({
        "ETH/USDT": snapshot_factory("ETH/USDT", price=100.0),
        "BTC/USDT": snapshot_factory("BTC/USDT", price=50000.0, high_24h=51000.0, low_24h=49000.0),
    })


@pytest.fixture
def fake_predictor():
    """Provides a predictor that forecasts a 5% rise for ETH and flat BTC."""
    return FakePredictor({"ETH/USDT": 1.05, "BTC/USDT": 1.0})


@pytest.fixture
def fake_execution():
    """Provides an execution gateway with a 10000 balance."""
    return FakeExecution()
