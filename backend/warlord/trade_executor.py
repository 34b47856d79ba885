"""Trade execution layer: FinalDecision -> exchange calls."""

import logging
from typing import Optional

from warlord.config import Config
from warlord.exchange_adapters.exchange_adapter import ExchangeAdapter, ExchangeError
from warlord.models import Action, ExecutionResult, FinalDecision, Position


logger = logging.getLogger(__name__)


class TradeExecutor:
    """Handles trade execution on the exchange."""

    def __init__(self, config: Config, exchange_adapter: ExchangeAdapter):
        """
        Initialize the trade executor.

        Args:
            config: Configuration object
            exchange_adapter: Adapter orders are sent through
        """
        self.config = config
        self.exchange_adapter = exchange_adapter

    def execute(self, decision: FinalDecision, position: Optional[Position] = None) -> ExecutionResult:
        """
        Execute a final decision.

        Never raises: every failure comes back as an ExecutionResult with
        ``error`` set and the original exchange message preserved.

        Args:
            decision: Reconciled decision
            position: Open position on the instrument, if any

        Returns:
            ExecutionResult
        """
        try:
            if decision.action == Action.HOLD:
                return self._execute_hold(position)
            if decision.action == Action.CLOSE:
                return self._execute_close()
            if decision.action == Action.UPDATE_TPSL:
                return self._execute_tpsl_update(decision, position)
            return self._execute_entry(decision)
        except ExchangeError as e:
            logger.error(f"Execution failed: {e}")
            return ExecutionResult(executed=False, message="Execution failed", error=str(e))
        except Exception as e:
            logger.error(f"Execution error: {str(e)}", exc_info=True)
            return ExecutionResult(executed=False, message="Execution failed", error=str(e))

    def _execute_hold(self, position: Optional[Position]) -> ExecutionResult:
        risk = self.config.risk
        if (
            risk.rollover_enabled
            and position is not None
            and position.unrealized_pnl > 0
            and position.unrealized_pnl_ratio * 100 >= risk.rollover_upl_ratio_pct
        ):
            amount = position.unrealized_pnl * risk.rollover_fraction
            self.exchange_adapter.add_margin(position.side, amount)
            message = (
                f"Rollover: added {amount:.2f} USDT margin to the {position.side} position "
                f"(uplRatio {position.unrealized_pnl_ratio * 100:.1f}%)"
            )
            logger.info(message)
            return ExecutionResult(executed=True, message=message)

        logger.info("Action is HOLD, no execution needed")
        return ExecutionResult(executed=False, message="Hold")

    def _execute_close(self) -> ExecutionResult:
        failures = {}
        for pos_side in ("long", "short"):
            try:
                self.exchange_adapter.close_position(pos_side)
            except ExchangeError as e:
                missing = e.code == "51000" or "not exist" in e.message.lower()
                failures[pos_side] = f"no {pos_side} position" if missing else e.message
                continue
            message = f"Closed {pos_side} position"
            logger.info(message)
            return ExecutionResult(executed=True, message=message)

        error = f"Close failed (long: {failures['long']}, short: {failures['short']})"
        logger.error(error)
        return ExecutionResult(executed=False, message="Close failed", error=error)

    def _execute_tpsl_update(self, decision: FinalDecision, position: Optional[Position]) -> ExecutionResult:
        if position is None or not position.is_open:
            return ExecutionResult(executed=False, message="No position to protect", error="No open position")
        if position.side not in ("long", "short"):
            logger.warning(f"TP/SL update refused for {position.side} mode position")
            return ExecutionResult(
                executed=False,
                message="TP/SL update refused",
                error=f"Position side '{position.side}' is not supported, switch to long/short mode",
            )

        message = self.exchange_adapter.update_tpsl(
            position.side,
            f"{position.size:.2f}",
            decision.stop_loss,
            decision.profit_target,
        )
        logger.info(message)
        return ExecutionResult(executed=True, message=message)

    def _execute_entry(self, decision: FinalDecision) -> ExecutionResult:
        size = decision.size_contracts
        if size < self.config.risk.min_contracts:
            return ExecutionResult(
                executed=False,
                message="Order skipped",
                error=f"Invalid size {decision.size} (< {self.config.risk.min_contracts} contracts)",
            )

        is_buy = decision.action == Action.BUY
        pos_side = "long" if is_buy else "short"
        side = "buy" if is_buy else "sell"

        try:
            self.exchange_adapter.ensure_long_short_mode()
        except ExchangeError as e:
            logger.warning(f"Position mode check failed: {e}")

        self.exchange_adapter.set_leverage(decision.leverage, pos_side)
        order_id = self.exchange_adapter.place_market_order(
            side,
            pos_side,
            f"{size:.2f}",
            decision.stop_loss,
            decision.profit_target,
        )
        message = f"{decision.action.value} {decision.size} contracts @ {decision.leverage:g}x"
        return ExecutionResult(executed=True, order_id=order_id, message=message)
