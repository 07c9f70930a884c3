"""
Append-only audit journal of trading decisions.

Every symbol processed on every tick leaves exactly one DecisionRecord here.
The journal is in-memory and bounded; the oldest records are dropped once
``max_records`` is reached. Use ``to_dataframe`` to hand the trail to
pandas for analysis.
"""
from collections import deque
from typing import Deque, List, Optional

import pandas as pd

from flashtrade.agents.data_structures import DecisionRecord

COLUMNS = [
    "tick",
    "symbol",
    "action",
    "confidence",
    "amount",
    "reference_price",
    "predicted_price",
    "degraded",
    "executed",
    "error",
    "reason",
    "recorded_at",
]


class DecisionJournal:
    """
    A bounded in-memory store of DecisionRecords.
    """

    def __init__(self, max_records: int = 10000):
        if max_records < 1:
            raise ValueError(f"max_records must be at least 1, got {max_records}")
        self._records: Deque[DecisionRecord] = deque(maxlen=max_records)

    def append(self, record: DecisionRecord) -> None:
        self._records.append(record)

    def records(self, symbol: Optional[str] = None) -> List[DecisionRecord]:
        """
        Returns the recorded facts, oldest first.

        Args:
            symbol: Only return records for this symbol.
        """
        if symbol is None:
            return list(self._records)
        return [record for record in self._records if record.symbol == symbol]

    def latest(self, symbol: str) -> Optional[DecisionRecord]:
        """Returns the most recent record for a symbol, or None."""
        for record in reversed(self._records):
            if record.symbol == symbol:
                return record
        return None

    def to_dataframe(self) -> pd.DataFrame:
        """
        Flatten the journal into one row per record.

        Columns keep the dtypes pandas infers, so fields a record lacks come
        back as missing values (None or NaN depending on the column and the
        pandas version). Test them with ``pd.isna``.
        """
        rows = []
        for record in self._records:
            decision = record.decision
            rows.append({
                "tick": record.tick,
                "symbol": record.symbol,
                "action": decision.action.value if decision else None,
                "confidence": decision.confidence if decision else None,
                "amount": decision.amount if decision else None,
                "reference_price": decision.reference_price if decision else None,
                "predicted_price": decision.predicted_price if decision else None,
                "degraded": decision.degraded if decision else False,
                "executed": record.executed,
                "error": record.error,
                "reason": decision.reason if decision else None,
                "recorded_at": record.recorded_at,
            })
        return pd.DataFrame(rows, columns=COLUMNS)

    def __len__(self) -> int:
        return len(self._records)
