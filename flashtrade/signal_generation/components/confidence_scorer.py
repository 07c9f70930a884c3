"""
Confidence Scorer component.

Turns a market snapshot into a bounded confidence value for a prediction,
from observed 24h volatility and the strength of the recent trend.
"""
from flashtrade.agents.data_structures import MarketSnapshot

BASE_CONFIDENCE_FLOOR = 0.1
STRONG_TREND_THRESHOLD = 0.02
STRONG_TREND_CONFIDENCE = 0.8
WEAK_TREND_CONFIDENCE = 0.6
MAX_CONFIDENCE = 0.95


class ConfidenceScorer:
    """
    Scores how far a prediction can be trusted given current market conditions.

    Wide 24h ranges lower the score, a clear 24h trend raises it. Missing
    high/low/change values count as zero, which yields the optimistic
    no-volatility base; callers should treat a score computed from a sparse
    snapshot with that in mind (see ``is_sparse``).

    The score is always within [0.06, 0.95].
    """

    def score(self, snapshot: MarketSnapshot, predicted_price: float) -> float:
        """
        Compute the confidence for a (snapshot, prediction) pair.

        Args:
            snapshot: The market snapshot the prediction was made from.
            predicted_price: The forecast price. Not part of the formula today.

        Returns:
            Confidence in [0.06, 0.95].
        """
        base_confidence = max(BASE_CONFIDENCE_FLOOR, 1.0 - self.volatility(snapshot))
        return min(MAX_CONFIDENCE, base_confidence * self.trend_confidence(snapshot))

    @staticmethod
    def volatility(snapshot: MarketSnapshot) -> float:
        if snapshot.high_24h is None or snapshot.low_24h is None:
            return 0.0
        return max(0.0, (snapshot.high_24h - snapshot.low_24h) / snapshot.price)

    @staticmethod
    def trend_confidence(snapshot: MarketSnapshot) -> float:
        change = snapshot.change_24h or 0.0
        if abs(change) > STRONG_TREND_THRESHOLD:
            return STRONG_TREND_CONFIDENCE
        return WEAK_TREND_CONFIDENCE

    @staticmethod
    def is_sparse(snapshot: MarketSnapshot) -> bool:
        """True when any input of the score fell back to its zero default."""
        return snapshot.high_24h is None or snapshot.low_24h is None or snapshot.change_24h is None
