"""
Communication between the agent runtime and the rest of the process:
capability dispatch, the event bus and the decision journal.
"""

from .capabilities import Capability, CapabilityRegistry
from .journal import DecisionJournal
from .message_bus import DECISION_RECORDED, TICK_COMPLETED, MessageBus

__all__ = [
    "Capability",
    "CapabilityRegistry",
    "DecisionJournal",
    "MessageBus",
    "DECISION_RECORDED",
    "TICK_COMPLETED",
]
