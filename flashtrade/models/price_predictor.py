"""
Autoregressive price predictor built on numpy.

Each input window is min-max normalised on its own (with a 10% buffer either
side), and a ridge-regularised linear model maps the normalised window to the
normalised next price. Until it has been trained the model is a persistence
forecast: it predicts the last observed price.
"""
import asyncio
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from flashtrade.agents.base import Predictor
from flashtrade.errors import ModelNotReady, PredictionFailure
from flashtrade.models.price_history import pad_sequence
from flashtrade.utils.logging import get_logger

logger = get_logger(__name__)

SCALER_BUFFER = 0.1


@dataclass(frozen=True)
class ModelWeights:
    """Immutable weights. Training swaps the whole object in one assignment."""
    coefficients: np.ndarray
    bias: float
    trained_samples: int = 0


def _persistence_weights(sequence_length: int) -> ModelWeights:
    coefficients = np.zeros(sequence_length)
    coefficients[-1] = 1.0
    return ModelWeights(coefficients=coefficients, bias=0.0)


def _scaler(window: np.ndarray) -> Tuple[float, float]:
    low, high = float(window.min()), float(window.max())
    if high == low:
        spread = abs(high) or 1.0
        return high - spread * SCALER_BUFFER, high + spread * SCALER_BUFFER
    span = high - low
    return low - span * SCALER_BUFFER, high + span * SCALER_BUFFER


class PricePredictor(Predictor):
    """
    Ridge-regression autoregressive predictor.

    Inference reads ``self._weights`` once per call and never locks; training
    runs off the event loop and replaces the weights atomically when done.
    """

    def __init__(
        self,
        sequence_length: int = 60,
        ridge: float = 1e-3,
        weights_path: Optional[str] = None,
        history_capacity: Optional[int] = None,
    ):
        super().__init__(sequence_length=sequence_length, history_capacity=history_capacity)
        if ridge < 0:
            raise ValueError(f"ridge must be non-negative, got {ridge}")
        self.ridge = ridge
        self.weights_path = weights_path
        self._weights: Optional[ModelWeights] = None

    @classmethod
    def from_settings(cls, predictor_settings) -> "PricePredictor":
        return cls(
            sequence_length=predictor_settings.SEQUENCE_LENGTH,
            ridge=predictor_settings.RIDGE,
            weights_path=predictor_settings.WEIGHTS_PATH,
            history_capacity=predictor_settings.HISTORY_CAPACITY,
        )

    @property
    def is_initialized(self) -> bool:
        return self._weights is not None

    async def initialize(self) -> None:
        if self.is_initialized:
            return
        logger.info("Initializing PricePredictor", sequence_length=self.sequence_length)
        if self.weights_path and Path(self.weights_path).exists():
            self.load(self.weights_path)
        else:
            self._weights = _persistence_weights(self.sequence_length)
        logger.info("PricePredictor initialized", trained_samples=self._weights.trained_samples)

    async def predict(self, price_sequence: Sequence[float]) -> float:
        weights = self._weights
        if weights is None:
            raise ModelNotReady("PricePredictor used before initialize()")

        window = np.asarray(pad_sequence(price_sequence, self.sequence_length), dtype=float)
        if not np.all(np.isfinite(window)):
            raise PredictionFailure("price sequence contains non-finite values")

        low, high = _scaler(window)
        normalized = (window - low) / (high - low)
        prediction = float(normalized @ weights.coefficients + weights.bias) * (high - low) + low

        if not math.isfinite(prediction):
            raise PredictionFailure(f"model produced a non-finite prediction: {prediction}")
        return prediction

    async def _train(self, prices: Sequence[float]) -> None:
        if self._weights is None:
            raise ModelNotReady("PricePredictor must be initialized before training")
        logger.info("Starting model training", samples=len(prices))
        weights = await asyncio.to_thread(self._fit, np.asarray(prices, dtype=float))
        self._weights = weights
        logger.info("Model training completed", trained_samples=weights.trained_samples)

    def _fit(self, prices: np.ndarray) -> ModelWeights:
        n = self.sequence_length
        if prices.ndim != 1 or len(prices) <= n:
            raise PredictionFailure(f"training needs more than {n} prices, got {len(prices)}")
        if not np.all(np.isfinite(prices)):
            raise PredictionFailure("training prices contain non-finite values")

        windows = np.lib.stride_tricks.sliding_window_view(prices[:-1], n)
        targets = prices[n:]

        rows = []
        normalized_targets = []
        for window, target in zip(windows, targets):
            low, high = _scaler(window)
            rows.append((window - low) / (high - low))
            normalized_targets.append((target - low) / (high - low))

        features = np.hstack([np.asarray(rows), np.ones((len(rows), 1))])
        y = np.asarray(normalized_targets)

        # Ridge penalty on the coefficients only, not the bias column.
        penalty = self.ridge * np.eye(n + 1)
        penalty[-1, -1] = 0.0
        solution = np.linalg.solve(features.T @ features + penalty, features.T @ y)

        return ModelWeights(
            coefficients=solution[:-1],
            bias=float(solution[-1]),
            trained_samples=len(y),
        )

    def save(self, path: Union[str, Path]) -> None:
        if self._weights is None:
            raise ModelNotReady("PricePredictor has no weights to save")
        np.savez(
            path,
            coefficients=self._weights.coefficients,
            bias=np.array(self._weights.bias),
            trained_samples=np.array(self._weights.trained_samples),
        )
        logger.info("Model saved", path=str(path))

    def load(self, path: Union[str, Path]) -> None:
        with np.load(path) as data:
            coefficients = np.asarray(data["coefficients"], dtype=float)
            if coefficients.shape != (self.sequence_length,):
                raise PredictionFailure(
                    f"weights at {path} are for sequence length {coefficients.shape[0]}, "
                    f"expected {self.sequence_length}"
                )
            self._weights = ModelWeights(
                coefficients=coefficients,
                bias=float(data["bias"]),
                trained_samples=int(data["trained_samples"]),
            )
        logger.info("Model loaded", path=str(path))

    def summary(self) -> str:
        if self._weights is None:
            return "Model not initialized"
        w = self._weights
        return (
            f"PricePredictor(sequence_length={self.sequence_length}, ridge={self.ridge}, "
            f"trained_samples={w.trained_samples}, bias={w.bias:.6f}, "
            f"coef_norm={float(np.linalg.norm(w.coefficients)):.6f})"
        )

    def dispose(self) -> None:
        if self._weights is not None:
            self._weights = None
            self.history.clear()
            logger.info("PricePredictor disposed")

    async def close(self) -> None:
        self.dispose()
