"""
Decision Engine component.

Maps a (snapshot, prediction, confidence) triple to BUY, SELL or HOLD.
"""
from typing import Optional

from flashtrade.agents.data_structures import Action, AgentConfig, MarketSnapshot, TradingDecision

# Predicted moves smaller than this are treated as noise.
PRICE_CHANGE_THRESHOLD = 0.02
MIN_PRICE_MOVE = 0.01


class DecisionEngine:
    """
    Stateless decision rule.

    Rules are evaluated in order and the first match wins:

    1. confidence below ``config.min_confidence`` -> HOLD
    2. predicted change above +2% -> BUY
    3. predicted change below -2% -> SELL
    4. otherwise -> HOLD

    Nothing outside the arguments influences the result; the decision is
    stamped with the snapshot time, so identical inputs give equal decisions.
    """

    def decide(
        self,
        snapshot: MarketSnapshot,
        predicted_price: float,
        confidence: float,
        config: AgentConfig,
    ) -> TradingDecision:
        """
        Decide what to do with a prediction.

        Args:
            snapshot: Current market snapshot.
            predicted_price: Forecast price for the symbol.
            confidence: Output of the confidence scorer.
            config: Agent configuration providing ``min_confidence``.

        Returns:
            An unsized TradingDecision.
        """
        context = {
            "symbol": snapshot.symbol,
            "reference_price": snapshot.price,
            "predicted_price": predicted_price,
            "timestamp": snapshot.timestamp,
        }

        if confidence < config.min_confidence:
            return TradingDecision(
                action=Action.HOLD,
                confidence=confidence,
                reason=(
                    f"Confidence {confidence:.2f} below minimum {config.min_confidence:.2f} "
                    f"(deficit {config.min_confidence - confidence:.2f})"
                ),
                **context,
            )

        price_change = (predicted_price - snapshot.price) / snapshot.price

        if price_change > PRICE_CHANGE_THRESHOLD and abs(price_change) > MIN_PRICE_MOVE:
            return TradingDecision(
                action=Action.BUY,
                confidence=confidence,
                reason=f"Predicted rise of {price_change:.2%} exceeds {PRICE_CHANGE_THRESHOLD:.0%}",
                **context,
            )

        if price_change < -PRICE_CHANGE_THRESHOLD and abs(price_change) > MIN_PRICE_MOVE:
            return TradingDecision(
                action=Action.SELL,
                confidence=confidence,
                reason=f"Predicted fall of {abs(price_change):.2%} exceeds {PRICE_CHANGE_THRESHOLD:.0%}",
                **context,
            )

        return TradingDecision(
            action=Action.HOLD,
            confidence=confidence,
            reason=(
                f"Predicted change of {price_change:+.2%} is within "
                f"±{PRICE_CHANGE_THRESHOLD:.0%}, insufficient magnitude"
            ),
            **context,
        )

    @staticmethod
    def degraded(
        symbol: str, reason: str, confidence: float, reference_price: Optional[float] = None
    ) -> TradingDecision:
        """The HOLD recorded when no prediction could be produced."""
        return TradingDecision(
            action=Action.HOLD,
            confidence=confidence,
            reason=f"Prediction unavailable, holding: {reason}",
            symbol=symbol,
            reference_price=reference_price,
            degraded=True,
        )
