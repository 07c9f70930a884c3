import asyncio
import os

from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
load_dotenv()

from flashtrade.agents.data_structures import AgentConfig  # noqa: E402
from flashtrade.agents.trading import AgentRuntime  # noqa: E402
from flashtrade.config.settings import settings  # noqa: E402
from flashtrade.data.providers.simulated_provider import SimulatedMarketDataSource  # noqa: E402
from flashtrade.data.providers.ticker_provider import TickerMarketDataSource  # noqa: E402
from flashtrade.execution.paper_gateway import PaperExecutionGateway  # noqa: E402
from flashtrade.models.price_predictor import PricePredictor  # noqa: E402
from flashtrade.utils.logging import configure_logging, get_logger  # noqa: E402

logger = get_logger(__name__)


def build_runtime() -> AgentRuntime:
    """Wire the agent from settings. FLASHTRADE_LIVE_DATA=1 uses the HTTP ticker."""
    if os.getenv("FLASHTRADE_LIVE_DATA") == "1":
        market_data = TickerMarketDataSource.from_settings(settings.market_data)
    else:
        market_data = SimulatedMarketDataSource()

    predictor = PricePredictor.from_settings(settings.predictor)
    # Fills are re-quoted from the same source the agent decides on.
    execution = PaperExecutionGateway.from_settings(settings.execution, price_source=market_data)

    return AgentRuntime(
        AgentConfig.from_settings(settings),
        market_data,
        predictor,
        execution,
        settings=settings,
    )


async def run():
    runtime = build_runtime()
    try:
        await runtime.initialize()
        await runtime.start()
        await runtime.wait()
    finally:
        await runtime.stop()
        logger.info("Final statistics", **runtime.get_statistics())


def main():
    """Run the trading agent until interrupted."""
    configure_logging(settings.logging.LEVEL, json_logs=settings.logging.JSON)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted, agent stopped")


if __name__ == "__main__":
    main()
