"""Cycle controller: poll tick, analysis gate and the analysis cycle."""

import logging
import time
from typing import Callable, Optional

from warlord.config import Config
from warlord.data_acquisition import DataAcquisition
from warlord.decision_builder import DecisionBuilder
from warlord.decision_parser import DecisionParser
from warlord.decision_provider import DecisionProvider, ModelCallError
from warlord.decision_reconciler import DecisionReconciler
from warlord.engine_state import EngineState
from warlord.models import AccountContext, Action, ExecutionResult, FinalDecision, MarketData
from warlord.prompt_builder import PromptBuilder
from warlord.services.shutdown_service import ShutdownService
from warlord.snapshot_builders.context_builder import DecisionContextBuilder
from warlord.trade_executor import TradeExecutor

logger = logging.getLogger(__name__)


class CycleController:
    """Orchestrates poll/analysis cycles and keeps every failure inside the cycle."""

    def __init__(
        self,
        config: Config,
        state: EngineState,
        data_acquisition: DataAcquisition,
        decision_provider: Optional[DecisionProvider],
        trade_executor: TradeExecutor,
        decision_parser: DecisionParser = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Wire the per-tick pipeline around shared engine state.

        Args:
            config: Configuration object
            state: Shared engine state
            data_acquisition: DataAcquisition instance
            decision_provider: Decision provider (None when no model key is configured)
            trade_executor: TradeExecutor instance
            decision_parser: DecisionParser instance
            clock: Returns the current time in seconds
        """
        self.state = state
        self.clock = clock
        self.decision_parser = decision_parser or DecisionParser()
        self.prompt_builder = PromptBuilder()
        self.decision_builder = DecisionBuilder()
        self._pending = None
        self._install(config, data_acquisition, decision_provider, trade_executor)

        self.shutdown_service = ShutdownService(self)
        self.running = True

        logger.info(f"Cycle controller ready for {config.instrument_id}")

    def _install(self, config, data_acquisition, decision_provider, trade_executor) -> None:
        self.config = config
        self.data_acquisition = data_acquisition
        self.decision_provider = decision_provider
        self.trade_executor = trade_executor
        self.context_builder = DecisionContextBuilder(config)
        self.reconciler = DecisionReconciler(config.risk, self.decision_builder)

    def replace_components(self, config, data_acquisition, decision_provider, trade_executor) -> None:
        """Queue new components; they take effect at the start of the next tick."""
        self._pending = (config, data_acquisition, decision_provider, trade_executor)

    def startup(self) -> bool:
        """
        Test exchange and LLM connectivity.

        Returns:
            bool: True if the exchange answers (a failing model only warns)
        """
        logger.info("=" * 60)
        logger.info("STARTING WARLORD SWAP CONTROLLER")
        logger.info("=" * 60)

        logger.info("Probing exchange (ticker + balance)")
        if not self.data_acquisition.exchange_adapter.test_connection():
            logger.error("Exchange connectivity FAILED")
            return False
        logger.info("Exchange reachable")

        logger.info("Probing decision model")
        if self.decision_provider is None:
            logger.warning("No DeepSeek API key configured: analysis cycles will hold until one is set")
        elif self.decision_provider.test_connection():
            logger.info("Decision model reachable")
        else:
            logger.warning("LLM connectivity FAILED: analysis cycles will hold until it recovers")

        self.state.add_log("INFO", "System initialized, waiting for instructions...")
        logger.info("=" * 60)
        return True

    def run(self) -> None:
        """
        Execute poll ticks in a continuous loop.

        A tick that raises is logged and the loop moves on.
        """
        while self.running:
            tick_start_time = self.clock()
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Tick failed: {e}", exc_info=True)
                self.state.add_log("ERROR", f"Strategy execution error: {e}")
            self._sleep_until_next_cycle(tick_start_time)

    def _sleep_until_next_cycle(self, cycle_start_time: float) -> None:
        """Sleep until the next poll based on configured interval."""
        cycle_duration = self.clock() - cycle_start_time
        sleep_time = max(0, self.config.poll_interval_seconds - cycle_duration)

        if sleep_time > 0:
            logger.debug(f"Sleeping for {sleep_time:.1f} seconds until next poll")
            time.sleep(sleep_time)
        else:
            logger.warning(f"Tick took {cycle_duration:.1f}s, longer than interval {self.config.poll_interval_seconds}s")

    def tick(self) -> Optional[FinalDecision]:
        """
        One poll: refresh snapshots, then run an analysis cycle if the gate allows.

        Returns:
            The decision produced by this tick, or None if no analysis ran
        """
        if self._pending is not None:
            pending, self._pending = self._pending, None
            self._install(*pending)
            logger.info("New configuration applied")

        try:
            market = self.data_acquisition.fetch_market_data()
            account = self.data_acquisition.fetch_account_data()
        except Exception as e:
            if self.state.is_running:
                self.state.add_log("ERROR", f"Data sync failed: {e}")
            else:
                logger.warning(f"Data sync failed while paused: {e}")
            return None

        self.state.market_data = market
        self.state.account_data = account

        if not self.state.is_running:
            return None

        now = self.clock()
        if now - self.state.last_analysis_time < self.config.analysis_interval_seconds:
            return None
        self.state.last_analysis_time = now

        return self.run_analysis(market, account)

    def run_analysis(self, market: MarketData, account: AccountContext) -> FinalDecision:
        """
        Run one analysis cycle to completion.

        Produces exactly one log entry for the outcome, and one history
        entry when analysis succeeds.
        """
        logger.info("Calling the decision engine...")
        try:
            decision = self._decide(market, account)
        except Exception as e:
            if isinstance(e, ModelCallError):
                logger.error(f"Model call failed: {e}")
            else:
                logger.error(f"Analysis failed: {e}", exc_info=True)
            decision = self.decision_builder.error_decision(str(e), timestamp=self.state.now_ms())
            self.state.latest_decision = decision
            self.state.add_log("ERROR", f"Analysis failed, holding: {e}")
            return decision

        self.state.record_decision(decision)
        summary = (
            f"Decision: {decision.action.value} {decision.size} contracts "
            f"@ {decision.leverage:g}x (confidence {decision.confidence:.0f}%)"
        )
        if decision.corrections:
            summary += f", {len(decision.corrections)} correction(s)"

        if not self.state.is_running:
            self.state.add_log("INFO", f"{summary}. Engine paused, not executed")
            return decision

        position = account.primary_position(self.config.instrument_id)
        result = self.trade_executor.execute(decision, position)
        log_type, message = self._describe_outcome(decision, result, summary)
        self.state.add_log(log_type, message)
        return decision

    def _decide(self, market: MarketData, account: AccountContext) -> FinalDecision:
        if self.decision_provider is None:
            raise ModelCallError("DeepSeek API key is not configured")
        context = self.context_builder.build(market, account)
        messages = self.prompt_builder.build_messages(context)
        raw_text = self.decision_provider.get_decision(messages)
        raw = self.decision_parser.parse(raw_text)
        return self.reconciler.reconcile(raw, context, timestamp=self.state.now_ms())

    @staticmethod
    def _describe_outcome(decision: FinalDecision, result: ExecutionResult, summary: str):
        if result.error:
            return "ERROR", f"{summary}. Execution failed: {result.error}"
        if not result.executed:
            return "INFO", summary
        if decision.action in (Action.BUY, Action.SELL, Action.CLOSE):
            return "TRADE", f"{summary}. {result.message}" + (f" (order {result.order_id})" if result.order_id else "")
        return "SUCCESS", f"{summary}. {result.message}"

    def shutdown(self) -> None:
        """Gracefully shutdown the controller."""
        self.shutdown_service.shutdown()
