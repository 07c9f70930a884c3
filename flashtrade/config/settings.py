"""
Centralized configuration management for the FlashTrade agent.

Configuration is layered the same way for every section:

Tier 1: Code Defaults (this module)
- Sensible defaults for risk limits, scheduling and collaborators
- Version controlled, visible in PRs

Tier 2: .env file
- Local overrides and secrets, never committed

Tier 3: Environment Variables
- Override any default, e.g. AGENT_MIN_CONFIDENCE=0.6

This module uses pydantic-settings to read environment variables and .env
files into typed, validated settings objects.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """
    Risk limits and scheduling for a single agent instance.
    """
    model_config = SettingsConfigDict(env_prefix='AGENT_')

    NAME: str = "flashtrade-agent"
    RISK_TOLERANCE: float = 0.1  # fraction of balance at risk per trade
    MAX_POSITION_SIZE: float = 0.05  # hard cap, fraction of balance
    MIN_CONFIDENCE: float = 0.5
    TICK_INTERVAL_SECONDS: float = 30.0
    SYMBOLS: List[str] = ["ETH/USDT", "BTC/USDT", "METIS/USDT"]

    # 1 = sequential symbol processing
    MAX_CONCURRENCY: int = 1

    # Confidence attached to the HOLD produced when the predictor fails
    DEGRADED_CONFIDENCE: float = 0.3


class SchedulerSettings(BaseSettings):
    """
    Backoff and bookkeeping knobs for the tick loop.
    """
    model_config = SettingsConfigDict(env_prefix='SCHEDULER_')

    OUTAGE_BACKOFF_MULTIPLIER: float = 2.0
    OUTAGE_BACKOFF_MAX_SECONDS: float = 300.0
    LOOP_ERROR_BACKOFF_SECONDS: float = 5.0
    CONNECT_TIMEOUT_SECONDS: float = 10.0
    JOURNAL_MAX_RECORDS: int = 10000


class PredictorSettings(BaseSettings):
    """
    Configuration for the price predictor collaborator.
    """
    model_config = SettingsConfigDict(env_prefix='PREDICTOR_')

    SEQUENCE_LENGTH: int = 60
    RIDGE: float = 1e-3
    WEIGHTS_PATH: Optional[str] = None

    # Prices kept per symbol; training needs more than SEQUENCE_LENGTH of them
    HISTORY_CAPACITY: int = 500
    # Retrain every N ticks in the background, 0 disables
    TRAIN_EVERY_TICKS: int = 20


class MarketDataSettings(BaseSettings):
    """
    Configuration for the HTTP ticker market data source.
    """
    model_config = SettingsConfigDict(env_prefix='MARKET_DATA_')

    BASE_URL: str = "https://api.binance.com"
    TIMEOUT_SECONDS: float = 5.0
    RATE_LIMIT: int = 10
    RATE_PERIOD_SECONDS: float = 1.0


class ExecutionSettings(BaseSettings):
    """
    Configuration for the execution gateway.
    """
    model_config = SettingsConfigDict(env_prefix='EXECUTION_')

    STARTING_BALANCE: float = 10000.0
    SLIPPAGE_TOLERANCE: float = 0.005  # 0.5%
    DEADLINE_SECONDS: float = 300.0  # 5 minutes, matches the contract deadline
    MEV_PROTECTION: bool = True


class LoggingSettings(BaseSettings):
    """
    Logging configuration.
    """
    model_config = SettingsConfigDict(env_prefix='LOG_')

    LEVEL: str = "INFO"
    JSON: Optional[bool] = None  # None: JSON unless attached to a terminal


class Settings(BaseSettings):
    """
    Main settings object that aggregates all other settings.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    agent: AgentSettings = AgentSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    predictor: PredictorSettings = PredictorSettings()
    market_data: MarketDataSettings = MarketDataSettings()
    execution: ExecutionSettings = ExecutionSettings()
    logging: LoggingSettings = LoggingSettings()


settings = Settings()
