"""
Position Sizer component.

Bounds the order amount for an actionable decision by risk tolerance,
confidence and a hard per-position cap.
"""
from flashtrade.agents.data_structures import AgentConfig
from flashtrade.errors import ConfigurationError


class PositionSizer:
    """
    Fixed-fractional position sizing scaled by confidence.

    amount = min(balance * risk_tolerance * confidence,
                 balance * max_position_size)
    """

    def size(self, balance: float, confidence: float, config: AgentConfig) -> float:
        """
        Calculate the order amount in quote currency.

        Args:
            balance: Available balance. Must be non-negative.
            confidence: Decision confidence in [0, 1].
            config: Agent configuration with the risk fractions.

        Returns:
            An amount in [0, balance * config.max_position_size].

        Raises:
            ConfigurationError: If the balance is negative or a fraction is
                outside [0, 1].
        """
        if balance < 0:
            raise ConfigurationError(f"balance must be non-negative, got {balance}")
        for name, value in (
            ("risk_tolerance", config.risk_tolerance),
            ("max_position_size", config.max_position_size),
            ("confidence", confidence),
        ):
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")

        max_risk = balance * config.risk_tolerance
        confidence_adjusted = max_risk * confidence
        return min(confidence_adjusted, balance * config.max_position_size)
