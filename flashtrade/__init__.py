"""
FlashTrade autonomous trading agent.

Turns a stream of externally produced price predictions into bounded,
risk-adjusted trade actions and drives them through an execution gateway on
a per-symbol tick loop.
"""

__version__ = "1.0.0"
