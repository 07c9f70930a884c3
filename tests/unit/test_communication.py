"""
Unit tests for the CapabilityRegistry, MessageBus and DecisionJournal.
"""
from unittest.mock import AsyncMock, MagicMock

import pandas as pd
import pytest

from flashtrade.agents.data_structures import Action, DecisionRecord, TradingDecision
from flashtrade.communication import (
    Capability,
    CapabilityRegistry,
    DecisionJournal,
    MessageBus,
)
from flashtrade.communication.journal import COLUMNS
from flashtrade.errors import InitializationError


def _record(tick, symbol, action=Action.HOLD, executed=None):
    amount = None if action is Action.HOLD else 100.0
    decision = TradingDecision(action, confidence=0.7, reason="test", amount=amount, symbol=symbol)
    return DecisionRecord(tick=tick, symbol=symbol, decision=decision, executed=executed)


# ==============================
# CapabilityRegistry
# ==============================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_registry_dispatches_to_handler():
    registry = CapabilityRegistry()
    handler = AsyncMock(return_value=42.0)
    registry.register(Capability.PREDICTION, handler)

    result = await registry.call(Capability.PREDICTION, "snapshot")

    assert result == 42.0
    handler.assert_awaited_once_with("snapshot")
    assert Capability.PREDICTION in registry


@pytest.mark.unit
def test_registry_rejects_duplicates_and_unknown_capabilities():
    registry = CapabilityRegistry()
    registry.register(Capability.EXECUTION, AsyncMock())

    with pytest.raises(ValueError):
        registry.register(Capability.EXECUTION, AsyncMock())
    with pytest.raises(ValueError):
        registry.register("teleport", AsyncMock())
    with pytest.raises(ValueError):
        registry.register(Capability.PORTFOLIO, "not callable")


@pytest.mark.unit
def test_registry_completeness():
    registry = CapabilityRegistry()
    registry.register(Capability.MARKET_DATA, AsyncMock())
    registry.register(Capability.PREDICTION, AsyncMock())

    assert registry.missing() == [Capability.EXECUTION, Capability.PORTFOLIO]
    with pytest.raises(InitializationError, match="execution, portfolio"):
        registry.require_complete()

    registry.register(Capability.EXECUTION, AsyncMock())
    registry.register(Capability.PORTFOLIO, AsyncMock())
    registry.require_complete()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_registry_call_without_handler():
    with pytest.raises(InitializationError):
        await CapabilityRegistry().call(Capability.MARKET_DATA, "ETH/USDT")


# ==============================
# MessageBus
# ==============================

@pytest.mark.unit
def test_publish_reaches_subscribers_in_order():
    bus = MessageBus()
    received = []
    bus.subscribe("decision_recorded", lambda message: received.append(("first", message)))
    bus.subscribe("decision_recorded", lambda message: received.append(("second", message)))

    delivered = bus.publish("decision_recorded", "payload")

    assert delivered == 2
    assert received == [("first", "payload"), ("second", "payload")]


@pytest.mark.unit
def test_failing_subscriber_is_isolated():
    bus = MessageBus()
    healthy = MagicMock()
    bus.subscribe("tick_completed", MagicMock(side_effect=RuntimeError("boom")))
    bus.subscribe("tick_completed", healthy)

    delivered = bus.publish("tick_completed", {"tick": 1})

    assert delivered == 1
    healthy.assert_called_once_with({"tick": 1})


@pytest.mark.unit
def test_unsubscribe():
    bus = MessageBus()
    callback = MagicMock()
    bus.subscribe("tick_completed", callback)
    bus.unsubscribe("tick_completed", callback)

    assert bus.publish("tick_completed", None) == 0
    callback.assert_not_called()


# ==============================
# DecisionJournal
# ==============================

@pytest.mark.unit
def test_journal_filters_and_latest():
    journal = DecisionJournal()
    journal.append(_record(1, "ETH/USDT"))
    journal.append(_record(1, "BTC/USDT"))
    journal.append(_record(2, "ETH/USDT", Action.BUY, executed=True))

    assert len(journal) == 3
    assert [r.tick for r in journal.records("ETH/USDT")] == [1, 2]
    assert journal.latest("ETH/USDT").action is Action.BUY
    assert journal.latest("SOL/USDT") is None


@pytest.mark.unit
def test_journal_is_bounded():
    journal = DecisionJournal(max_records=2)
    for tick in range(1, 4):
        journal.append(_record(tick, "ETH/USDT"))

    assert [r.tick for r in journal.records()] == [2, 3]
    with pytest.raises(ValueError):
        DecisionJournal(max_records=0)


@pytest.mark.unit
def test_journal_to_dataframe():
    journal = DecisionJournal()
    journal.append(_record(1, "ETH/USDT", Action.SELL, executed=False))
    journal.append(DecisionRecord(tick=1, symbol="BTC/USDT", decision=None, error="data unavailable"))

    frame = journal.to_dataframe()

    assert list(frame.columns) == COLUMNS
    assert len(frame) == 2
    assert frame.loc[0, "action"] == "SELL"
    assert not frame.loc[0, "executed"]
    assert pd.isna(frame.loc[1, "action"])
    assert frame.loc[1, "error"] == "data unavailable"


@pytest.mark.unit
def test_empty_journal_dataframe_has_columns():
    assert list(DecisionJournal().to_dataframe().columns) == COLUMNS
