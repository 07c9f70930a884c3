"""
Components of the decision pipeline.

Each component is a pure function object: no I/O, no hidden state.
"""

from .confidence_scorer import ConfidenceScorer
from .decision_engine import DecisionEngine
from .position_sizer import PositionSizer

__all__ = [
    "ConfidenceScorer",
    "DecisionEngine",
    "PositionSizer",
]
