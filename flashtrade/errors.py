"""
Error taxonomy for the FlashTrade agent.

Only ConfigurationError, InitializationError and LifecycleError propagate out
of the runtime's public methods. Everything else is recovered inside the tick
loop and turned into a HOLD/no-op plus an audit record.
"""


class TradingAgentError(Exception):
    """Base class for all errors raised by the trading agent."""


class ConfigurationError(TradingAgentError, ValueError):
    """An AgentConfig value is out of range or otherwise invalid."""


class InitializationError(TradingAgentError):
    """A required collaborator could not be reached during initialize()."""


class LifecycleError(TradingAgentError):
    """An operation was requested in a state that does not allow it."""


class DataUnavailable(TradingAgentError):
    """The market data source could not supply a snapshot for a symbol."""

    def __init__(self, symbol: str, message: str = "no recent market data"):
        super().__init__(f"{symbol}: {message}")
        self.symbol = symbol


class PredictionFailure(TradingAgentError):
    """The predictor could not produce a forecast."""


class ModelNotReady(PredictionFailure):
    """The predictor was called before it was initialized."""


class ExecutionFailure(TradingAgentError):
    """The execution gateway failed or is unreachable."""


class SystemicDataOutage(TradingAgentError):
    """Every symbol in a tick failed with DataUnavailable."""

    def __init__(self, tick: int, symbols):
        super().__init__(f"tick {tick}: market data unavailable for all {len(symbols)} symbols")
        self.tick = tick
        self.symbols = list(symbols)
