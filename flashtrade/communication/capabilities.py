"""
Closed registry of the capabilities the agent needs from its collaborators.

The agent dispatches every external call through this registry. Handlers are
registered once at construction, keyed by a fixed ``Capability`` enum, and
the set is checked for completeness before the agent is allowed to run.
"""
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List

from flashtrade.errors import InitializationError

Handler = Callable[..., Awaitable[Any]]


class Capability(str, Enum):
    """Every capability the tick pipeline can call."""
    MARKET_DATA = "market_data"   # (symbol) -> MarketSnapshot
    PREDICTION = "prediction"     # (snapshot) -> float
    EXECUTION = "execution"       # (decision, symbol) -> bool
    PORTFOLIO = "portfolio"       # () -> PortfolioState


class CapabilityRegistry:
    """
    Maps each Capability to exactly one async handler.
    """

    def __init__(self):
        self._handlers: Dict[Capability, Handler] = {}

    def register(self, capability: Capability, handler: Handler) -> None:
        """
        Register the handler for a capability.

        Raises:
            ValueError: If the capability is unknown, already registered, or
                the handler is not callable.
        """
        capability = Capability(capability)
        if capability in self._handlers:
            raise ValueError(f"capability {capability.value!r} is already registered")
        if not callable(handler):
            raise ValueError(f"handler for {capability.value!r} is not callable")
        self._handlers[capability] = handler

    def missing(self) -> List[Capability]:
        return [capability for capability in Capability if capability not in self._handlers]

    def require_complete(self) -> None:
        """
        Raises:
            InitializationError: If any capability has no handler.
        """
        missing = self.missing()
        if missing:
            names = ", ".join(capability.value for capability in missing)
            raise InitializationError(f"no handler registered for: {names}")

    async def call(self, capability: Capability, *args: Any) -> Any:
        try:
            handler = self._handlers[capability]
        except KeyError:
            raise InitializationError(f"no handler registered for: {capability.value}") from None
        return await handler(*args)

    def __contains__(self, capability: Capability) -> bool:
        return capability in self._handlers
