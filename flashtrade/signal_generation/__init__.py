"""
Rule-based signal generation for the FlashTrade agent.

Converts a market snapshot and a predicted price into a confidence score,
a BUY/SELL/HOLD decision and a risk-bounded order size.
"""

from .components import (
    ConfidenceScorer,
    DecisionEngine,
    PositionSizer,
)

__all__ = [
    "ConfidenceScorer",
    "DecisionEngine",
    "PositionSizer",
]
