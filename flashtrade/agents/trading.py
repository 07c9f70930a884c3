"""
The trading agent runtime: lifecycle, tick loop and per-symbol pipeline.

One ``AgentRuntime`` drives one agent. It owns its configuration, the running
flag and the set of scheduled symbols; market data, predictions, execution
and the portfolio all belong to the collaborators it is given.

Per tick, for each symbol:

    snapshot -> forecast -> confidence -> decision -> size -> execute -> record

A failure in any step is caught, logged with the symbol and tick, and turned
into an audit record; the remaining symbols still get their full cycle.

The running loop also retrains the predictor in a background task every
``TRAIN_EVERY_TICKS`` ticks; ticks keep predicting while it trains.
"""
import asyncio
import math
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from flashtrade.agents.base import ExecutionGateway, MarketDataSource, Predictor
from flashtrade.agents.data_structures import (
    Action,
    AgentConfig,
    AgentState,
    DecisionRecord,
    PortfolioState,
    TickReport,
    TradingDecision,
    utc_now,
)
from flashtrade.communication.capabilities import Capability, CapabilityRegistry
from flashtrade.communication.journal import DecisionJournal
from flashtrade.communication.message_bus import DECISION_RECORDED, TICK_COMPLETED, MessageBus
from flashtrade.config.settings import Settings, settings as default_settings
from flashtrade.errors import (
    ConfigurationError,
    DataUnavailable,
    InitializationError,
    LifecycleError,
    PredictionFailure,
    SystemicDataOutage,
)
from flashtrade.signal_generation.components import ConfidenceScorer, DecisionEngine, PositionSizer
from flashtrade.utils.logging import get_logger, symbol_context

SPARSE_DATA_NOTE = "sparse market data: missing 24h high/low/change counted as zero"


class AgentRuntime:
    """
    Stateful orchestrator for one trading agent.

    Lifecycle: CREATED -> INITIALIZED -> RUNNING -> STOPPED. STOPPED is
    terminal; build a new runtime to trade again.
    """

    def __init__(
        self,
        config: AgentConfig,
        market_data: MarketDataSource,
        predictor: Predictor,
        execution: ExecutionGateway,
        *,
        settings: Optional[Settings] = None,
        message_bus: Optional[MessageBus] = None,
        journal: Optional[DecisionJournal] = None,
        scorer: Optional[ConfidenceScorer] = None,
        engine: Optional[DecisionEngine] = None,
        sizer: Optional[PositionSizer] = None,
    ):
        """
        Initializes the runtime.

        Args:
            config: Validated agent configuration.
            market_data: Source of market snapshots.
            predictor: Price predictor; owns its own price history.
            execution: Settlement layer; owns the portfolio.
            settings: Scheduler and agent settings. Defaults to the
                process-wide settings.
            message_bus: Bus receiving decision and tick events.
            journal: Audit journal for decision records.
            scorer: Confidence scorer override.
            engine: Decision engine override.
            sizer: Position sizer override.

        Raises:
            ConfigurationError: If the config or scheduler settings are invalid.
        """
        if not isinstance(config, AgentConfig):
            raise ConfigurationError(f"expected AgentConfig, got {type(config).__name__}")
        self.config = config
        self.settings = settings or default_settings

        scheduler = self.settings.scheduler
        if scheduler.OUTAGE_BACKOFF_MULTIPLIER <= 1.0:
            raise ConfigurationError("OUTAGE_BACKOFF_MULTIPLIER must be greater than 1")
        self.degraded_confidence = self.settings.agent.DEGRADED_CONFIDENCE
        if not 0.0 <= self.degraded_confidence <= 1.0:
            raise ConfigurationError(
                f"DEGRADED_CONFIDENCE must be within [0, 1], got {self.degraded_confidence}"
            )

        self.market_data = market_data
        self.predictor = predictor
        self.execution = execution

        self.registry = CapabilityRegistry()
        self.registry.register(Capability.MARKET_DATA, market_data.get_snapshot)
        self.registry.register(Capability.PREDICTION, predictor.forecast)
        self.registry.register(Capability.EXECUTION, execution.execute_trade)
        self.registry.register(Capability.PORTFOLIO, execution.get_portfolio)

        self.message_bus = message_bus or MessageBus()
        self.journal = journal or DecisionJournal(max_records=scheduler.JOURNAL_MAX_RECORDS)
        self.scorer = scorer or ConfidenceScorer()
        self.engine = engine or DecisionEngine()
        self.sizer = sizer or PositionSizer()

        self.logger = get_logger(__name__, agent=config.name)

        self._state = AgentState.CREATED
        self._running = False
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._training_task: Optional[asyncio.Task] = None
        self._symbols: Tuple[str, ...] = config.symbols
        self._tick_interval = config.tick_interval
        self._consecutive_outages = 0

        self.tick_count = 0
        self.last_report: Optional[TickReport] = None
        self.stats: Dict[str, Any] = {
            "ticks": 0,
            "decisions": {action.value: 0 for action in Action},
            "degraded_decisions": 0,
            "executions_succeeded": 0,
            "executions_failed": 0,
            "data_failures": 0,
            "pipeline_errors": 0,
            "systemic_outages": 0,
            "training_runs": 0,
            "training_failures": 0,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def symbols(self) -> Tuple[str, ...]:
        return self._symbols

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    async def initialize(self) -> None:
        """
        Validate the wiring and connect every collaborator.

        Idempotent: calling it again on an initialized or running agent does
        nothing.

        Raises:
            InitializationError: If a collaborator is missing or unreachable.
                Collaborators connected before the failure are closed again.
            LifecycleError: If the agent has been stopped.
        """
        if self._state is AgentState.STOPPED:
            raise LifecycleError("a stopped agent cannot be re-initialized")
        if self._state is not AgentState.CREATED:
            return

        self.registry.require_complete()

        timeout = self.settings.scheduler.CONNECT_TIMEOUT_SECONDS
        opened: List[Tuple[str, Callable[[], Awaitable[None]]]] = []
        connects = (self.market_data.connect, self.predictor.initialize, self.execution.connect)
        for connect, (name, close) in zip(connects, self._collaborators()):
            # On failure everything opened so far is closed, the failing one included.
            opened.append((name, close))
            try:
                await asyncio.wait_for(connect(), timeout=timeout)
            except Exception as e:
                self.logger.error("Collaborator failed to connect, closing the others", collaborator=name,
                                  error=repr(e))
                await self._close_collaborators(reversed(opened))
                if isinstance(e, InitializationError):
                    raise
                if isinstance(e, asyncio.TimeoutError):
                    raise InitializationError(f"{name} did not respond within {timeout}s") from None
                raise InitializationError(f"{name} unreachable: {e}") from e

        self._state = AgentState.INITIALIZED
        self.logger.info("Agent initialized", symbols=list(self._symbols))

    async def start(
        self,
        symbols: Optional[Iterable[str]] = None,
        tick_interval: Optional[float] = None,
    ) -> None:
        """
        Begin the tick loop in a background task.

        Args:
            symbols: Ordered symbols to trade. Defaults to the configured ones.
            tick_interval: Seconds between ticks. Defaults to the config.

        Raises:
            LifecycleError: If the agent is not initialized.
            ConfigurationError: If there are no symbols or the interval is
                not positive.
        """
        if self._state is AgentState.RUNNING:
            self.logger.warning("Agent is already running")
            return
        if self._state is not AgentState.INITIALIZED:
            raise LifecycleError(f"start() requires an initialized agent, state is {self._state.value}")

        chosen = tuple(symbols) if symbols is not None else self.config.symbols
        if not chosen:
            raise ConfigurationError("no symbols to trade")
        if len(set(chosen)) != len(chosen):
            raise ConfigurationError(f"duplicate symbols in {list(chosen)}")
        interval = self.config.tick_interval if tick_interval is None else tick_interval
        if not interval or interval <= 0:
            raise ConfigurationError(f"tick_interval must be positive, got {interval!r}")

        self._symbols = chosen
        self._tick_interval = float(interval)
        self._running = True
        self._state = AgentState.RUNNING
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name=f"{self.config.name}-tick-loop")
        self.logger.info("Agent started", symbols=list(chosen), tick_interval=self._tick_interval)

    async def stop(self) -> None:
        """
        Stop the agent after the in-flight tick drains.

        Never cancels a running execution call, and waits for a background
        training pass to finish before closing the collaborators. Idempotent.
        """
        if self._stop_requested:
            await self._join_loop()
            return

        self.logger.info("Stopping agent")
        self._stop_requested = True
        self._running = False
        self._stop_event.set()
        was_active = self._state in (AgentState.INITIALIZED, AgentState.RUNNING)

        await self._join_loop()
        await self._join_training()
        self._state = AgentState.STOPPED

        if was_active:
            await self._close_collaborators(self._collaborators())
        self.logger.info("Agent stopped", ticks=self.tick_count)

    async def wait(self) -> None:
        """Wait until the tick loop exits."""
        await self._join_loop()

    async def _join_loop(self) -> None:
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        except Exception:
            self.logger.exception("Tick loop exited with an error")

    async def _join_training(self) -> None:
        task = self._training_task
        if task is None or task.done():
            return
        self.logger.info("Waiting for background training to finish")
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _collaborators(self) -> List[Tuple[str, Callable[[], Awaitable[None]]]]:
        return [
            ("market data source", self.market_data.disconnect),
            ("predictor", self.predictor.close),
            ("execution gateway", self.execution.disconnect),
        ]

    async def _close_collaborators(self, collaborators: Iterable[Tuple[str, Callable[[], Awaitable[None]]]]) -> None:
        for name, close in collaborators:
            try:
                await close()
            except Exception:
                self.logger.exception("Failed to close collaborator", collaborator=name)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        self.logger.info("Starting tick loop")
        while self._running:
            started = time.monotonic()
            try:
                report = await self.run_tick(self._symbols)
                self._schedule_training(report.tick)
                if report.systemic_outage:
                    delay = self.outage_backoff(self._consecutive_outages)
                    self.logger.warning("Backing off after systemic data outage", delay=delay,
                                        consecutive_outages=self._consecutive_outages)
                else:
                    delay = max(0.0, self._tick_interval - (time.monotonic() - started))
            except Exception:
                self.logger.exception("Error in tick loop")
                delay = self.settings.scheduler.LOOP_ERROR_BACKOFF_SECONDS

            if not self._running:
                break
            await self._sleep(delay)
        self.logger.info("Tick loop exited", ticks=self.tick_count)

    async def _sleep(self, delay: float) -> None:
        """Sleep until the next tick boundary or until stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def outage_backoff(self, consecutive_outages: int) -> float:
        """
        Delay before retrying after the n-th consecutive systemic outage.

        Always longer than the tick interval, doubling per consecutive outage
        up to OUTAGE_BACKOFF_MAX_SECONDS.
        """
        scheduler = self.settings.scheduler
        floor = self._tick_interval * scheduler.OUTAGE_BACKOFF_MULTIPLIER
        delay = floor * 2 ** max(0, consecutive_outages - 1)
        return max(floor, min(delay, scheduler.OUTAGE_BACKOFF_MAX_SECONDS))

    def _schedule_training(self, tick: int) -> Optional[asyncio.Task]:
        """
        Start a background training pass every TRAIN_EVERY_TICKS ticks.

        One symbol is trained per pass, rotating through the symbols whose
        history is longer than the predictor's sequence length. Ticks keep
        running while the model trains; a pass is skipped when the previous
        one has not finished yet.
        """
        every = self.settings.predictor.TRAIN_EVERY_TICKS
        if every <= 0 or tick % every or self._stop_requested:
            return None
        if not self.predictor.supports_training or self.predictor.is_training:
            return None
        if self._training_task is not None and not self._training_task.done():
            self.logger.debug("Previous training pass still running, skipping", tick=tick)
            return None

        eligible = [
            symbol for symbol in self._symbols
            if len(self.predictor.history.sequence(symbol)) > self.predictor.sequence_length
        ]
        if not eligible:
            self.logger.debug("Not enough price history to train yet", tick=tick)
            return None

        symbol = eligible[(tick // every) % len(eligible)]
        prices = self.predictor.history.sequence(symbol)
        self._training_task = asyncio.create_task(
            self._train(symbol, prices), name=f"{self.config.name}-training"
        )
        return self._training_task

    async def _train(self, symbol: str, prices: Sequence[float]) -> None:
        self.logger.info("Background training started", symbol=symbol, prices=len(prices))
        try:
            trained = await self.predictor.train(prices)
        except Exception:
            self.stats["training_failures"] += 1
            self.logger.exception("Background training failed", symbol=symbol)
            return
        if trained:
            self.stats["training_runs"] += 1
            self.logger.info("Background training finished", symbol=symbol)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_tick(self, symbols: Optional[Iterable[str]] = None) -> TickReport:
        """
        Run one full pass over the symbols.

        The portfolio is read once and that snapshot is used for sizing every
        symbol in the tick.

        Args:
            symbols: Symbols for this pass. Defaults to the scheduled ones.

        Returns:
            The TickReport for the pass.
        """
        symbols = tuple(symbols) if symbols is not None else self._symbols
        self.tick_count += 1
        tick = self.tick_count
        report = TickReport(tick=tick, started_at=utc_now())
        self.logger.debug("Tick started", tick=tick, symbols=len(symbols))

        portfolio, portfolio_error = await self._read_portfolio(tick)

        if self.config.max_concurrency > 1 and len(symbols) > 1:
            results = await self._process_concurrently(tick, symbols, portfolio, portfolio_error)
        else:
            results = []
            for symbol in symbols:
                results.append(await self._process_symbol(tick, symbol, portfolio, portfolio_error))

        for record, data_failed in results:
            report.records.append(record)
            if data_failed:
                report.data_failures.append(record.symbol)

        if symbols and len(report.data_failures) == len(symbols):
            report.systemic_outage = True
            self._consecutive_outages += 1
            self.stats["systemic_outages"] += 1
            self.logger.error(str(SystemicDataOutage(tick, symbols)), tick=tick)
        else:
            self._consecutive_outages = 0

        report.finished_at = utc_now()
        self.last_report = report
        self.stats["ticks"] += 1
        self.message_bus.publish(TICK_COMPLETED, report)
        self.logger.info(
            "Tick completed",
            tick=tick,
            records=len(report.records),
            data_failures=len(report.data_failures),
            duration=report.duration,
        )
        return report

    async def _process_concurrently(
        self,
        tick: int,
        symbols: Tuple[str, ...],
        portfolio: Optional[PortfolioState],
        portfolio_error: Optional[str],
    ) -> List[Tuple[DecisionRecord, bool]]:
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def unit(symbol: str) -> Tuple[DecisionRecord, bool]:
            async with semaphore:
                if self._stop_requested:
                    return self._record(DecisionRecord(tick, symbol, None, error="skipped: agent stopping")), False
                return await self._process_symbol(tick, symbol, portfolio, portfolio_error)

        outcomes = await asyncio.gather(*(unit(symbol) for symbol in symbols), return_exceptions=True)

        results = []
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.error("Symbol unit crashed", symbol=symbol, tick=tick, error=repr(outcome))
                self.stats["pipeline_errors"] += 1
                outcome = (self._record(DecisionRecord(tick, symbol, None, error=f"unit crashed: {outcome!r}")), False)
            results.append(outcome)
        return results

    async def _read_portfolio(self, tick: int) -> Tuple[Optional[PortfolioState], Optional[str]]:
        try:
            portfolio = await self.registry.call(Capability.PORTFOLIO)
            return portfolio.snapshot(), None
        except Exception as e:
            self.logger.error("Portfolio unavailable, trades will not be sized", tick=tick, error=str(e))
            return None, str(e)

    async def _process_symbol(
        self,
        tick: int,
        symbol: str,
        portfolio: Optional[PortfolioState],
        portfolio_error: Optional[str],
    ) -> Tuple[DecisionRecord, bool]:
        """
        Full decision cycle for one symbol. Never raises.

        Returns:
            The audit record and whether market data was unavailable.
        """
        with symbol_context(tick, symbol):
            return await self._run_pipeline(tick, symbol, portfolio, portfolio_error)

    async def _run_pipeline(
        self,
        tick: int,
        symbol: str,
        portfolio: Optional[PortfolioState],
        portfolio_error: Optional[str],
    ) -> Tuple[DecisionRecord, bool]:
        # a. market data
        try:
            snapshot = await self.registry.call(Capability.MARKET_DATA, symbol)
        except DataUnavailable as e:
            self.logger.warning("Market data unavailable, skipping symbol", error=str(e))
            self.stats["data_failures"] += 1
            return self._record(DecisionRecord(tick, symbol, None, error=f"data unavailable: {e}")), True
        except Exception as e:
            self.logger.error("Market data source failed, skipping symbol", error=repr(e), exc_info=True)
            self.stats["data_failures"] += 1
            return self._record(DecisionRecord(tick, symbol, None, error=f"data source error: {e!r}")), True

        # b. prediction, degrading to HOLD on failure
        try:
            predicted_price = await self.registry.call(Capability.PREDICTION, snapshot)
            if not isinstance(predicted_price, (int, float)) or not math.isfinite(predicted_price):
                raise PredictionFailure(f"predictor returned {predicted_price!r}")
        except Exception as e:
            self.logger.warning("Prediction failed, holding", error=repr(e))
            decision = self.engine.degraded(symbol, str(e) or repr(e), self.degraded_confidence, snapshot.price)
            return self._record(DecisionRecord(tick, symbol, decision)), False

        # c. score -> decide -> size
        try:
            decision = self._decide(snapshot, float(predicted_price), portfolio, portfolio_error)
        except Exception as e:
            self.logger.error("Decision pipeline failed", error=repr(e), exc_info=True)
            self.stats["pipeline_errors"] += 1
            return self._record(DecisionRecord(tick, symbol, None, error=f"decision pipeline error: {e!r}")), False

        # d. execution
        executed: Optional[bool] = None
        error: Optional[str] = None
        if decision.is_actionable:
            try:
                executed = bool(await self.registry.call(Capability.EXECUTION, decision, symbol))
            except Exception as e:
                executed = False
                error = f"execution failed: {e!r}"
                self.logger.error("Execution gateway failed", decision=decision.as_dict(), error=repr(e))
            else:
                if executed:
                    self.logger.info("Trade executed", action=decision.action.value, amount=decision.amount,
                             confidence=round(decision.confidence, 4))
                else:
                    error = "execution rejected by gateway"
                    self.logger.warning("Execution rejected", decision=decision.as_dict())
        else:
            self.logger.debug("Holding", reason=decision.reason, confidence=round(decision.confidence, 4))

        # e. audit
        return self._record(DecisionRecord(tick, symbol, decision, executed=executed, error=error)), False

    def _decide(
        self,
        snapshot,
        predicted_price: float,
        portfolio: Optional[PortfolioState],
        portfolio_error: Optional[str],
    ) -> TradingDecision:
        confidence = self.scorer.score(snapshot, predicted_price)
        decision = self.engine.decide(snapshot, predicted_price, confidence, self.config)

        if self.scorer.is_sparse(snapshot):
            decision = replace(decision, reason=f"{decision.reason} [{SPARSE_DATA_NOTE}]")

        if not decision.is_actionable:
            return decision
        if portfolio is None:
            return replace(
                decision,
                action=Action.HOLD,
                reason=f"{decision.reason}; not sized, portfolio unavailable: {portfolio_error}",
            )

        amount = self.sizer.size(portfolio.balance, confidence, self.config)
        if amount <= 0:
            return replace(decision, action=Action.HOLD, reason=f"{decision.reason}; position size is zero")
        return decision.with_amount(amount)

    def _record(self, record: DecisionRecord) -> DecisionRecord:
        self.journal.append(record)
        if record.decision is not None:
            self.stats["decisions"][record.decision.action.value] += 1
            if record.decision.degraded:
                self.stats["degraded_decisions"] += 1
        if record.executed is True:
            self.stats["executions_succeeded"] += 1
        elif record.executed is False:
            self.stats["executions_failed"] += 1
        self.message_bus.publish(DECISION_RECORDED, record)
        return record

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        """Snapshot of counters plus the current lifecycle state."""
        stats = dict(self.stats)
        stats["decisions"] = dict(self.stats["decisions"])
        stats["state"] = self._state.value
        stats["is_running"] = self._running
        stats["symbols"] = list(self._symbols)
        stats["tick_interval"] = self._tick_interval
        stats["consecutive_outages"] = self._consecutive_outages
        stats["journal_size"] = len(self.journal)
        return stats
