"""
Bounded per-symbol price history owned by the predictor.
"""
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence

from flashtrade.errors import PredictionFailure


class PriceHistory:
    """
    Fixed-capacity ring buffer of recent prices, one buffer per symbol.

    Old prices fall off the front once ``capacity`` is reached.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._buffers: Dict[str, Deque[float]] = {}

    def append(self, symbol: str, price: float) -> None:
        buffer = self._buffers.get(symbol)
        if buffer is None:
            buffer = self._buffers[symbol] = deque(maxlen=self.capacity)
        buffer.append(float(price))

    def sequence(self, symbol: str) -> List[float]:
        """Oldest-first copy of the buffered prices for a symbol."""
        return list(self._buffers.get(symbol, ()))

    def clear(self, symbol: Optional[str] = None) -> None:
        if symbol is None:
            self._buffers.clear()
        else:
            self._buffers.pop(symbol, None)

    def symbols(self) -> List[str]:
        return list(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)


def pad_sequence(prices: Sequence[float], length: int) -> List[float]:
    """
    Fit a price sequence to exactly ``length`` values.

    Short sequences are left-padded by repeating the earliest known price;
    long ones keep the most recent ``length`` prices.
    """
    if not prices:
        raise PredictionFailure("cannot predict from an empty price sequence")
    padded = list(prices)
    if len(padded) < length:
        padded = [padded[0]] * (length - len(padded)) + padded
    return padded[-length:]
