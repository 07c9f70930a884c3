"""
Structured logging for the FlashTrade agent.

Every module obtains its logger through ``get_logger(__name__)``. While a
symbol is being processed the runtime enters ``symbol_context``, which puts
``tick`` and ``symbol`` into structlog's context variables; every line logged
inside the block carries them, including lines from the market data source,
the predictor and the execution gateway. Concurrent symbol units run in
their own tasks and therefore in their own copy of the context.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

import structlog

# Third-party loggers that are too chatty at INFO.
NOISY_LOGGERS = ("aiohttp.access", "asyncio", "urllib3")


def configure_logging(
    level: str = "INFO",
    json_logs: Optional[bool] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Route structlog through stdlib logging for the agent process.

    Args:
        level: Logging level name, e.g. "DEBUG" or "WARNING".
        json_logs: Force JSON (True) or console (False) rendering. When None,
            JSON is used unless stderr is a terminal.
        quiet: Logger names capped at WARNING.

    Raises:
        ValueError: If ``level`` is not a logging level name.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level {level!r}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    if json_logs is None:
        json_logs = not sys.stderr.isatty()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> Any:
    """
    Get a structured logger, optionally pre-bound with context.

    Args:
        name: Logger name (usually __name__).
        **context: Key/value pairs bound to every message, e.g. agent="alpha".
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


@contextmanager
def symbol_context(tick: int, symbol: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``tick`` and ``symbol``."""
    with structlog.contextvars.bound_contextvars(tick=tick, symbol=symbol):
        yield
