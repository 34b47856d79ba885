"""Loop controller for the Warlord swap trading controller."""

import logging
from typing import Any, Dict, Optional

from warlord.config import Config
from warlord.controllers.cycle_controller import CycleController
from warlord.data_acquisition import DataAcquisition, create_exchange_adapter
from warlord.decision_provider import DecisionProvider, DeepSeekDecisionProvider
from warlord.engine_state import EngineState
from warlord.trade_executor import TradeExecutor


logger = logging.getLogger(__name__)


class LoopController:
    """Builds every component and exposes the control surface."""

    def __init__(self, config: Config):
        """
        Build the exchange adapter, model client and executor for this config.

        Args:
            config: Configuration object
        """
        self.config = config

        logger.info("Building controller components")

        self.state = EngineState(config)
        data_acquisition, decision_provider, trade_executor = self._build_components(config)
        self.cycle_controller = CycleController(
            config, self.state, data_acquisition, decision_provider, trade_executor
        )

        logger.info("Controller components ready")

    @staticmethod
    def _build_components(config: Config):
        adapter = create_exchange_adapter(config)
        data_acquisition = DataAcquisition(config, adapter)
        trade_executor = TradeExecutor(config, adapter)
        decision_provider = LoopController._init_decision_provider(config)
        return data_acquisition, decision_provider, trade_executor

    @staticmethod
    def _init_decision_provider(config: Config) -> Optional[DecisionProvider]:
        """
        DeepSeek provider, or None while no API key is configured.

        Args:
            config: Configuration object
        """
        if not config.deepseek_api_key:
            logger.warning("DEEPSEEK_API_KEY is not set; decisions will hold until it is configured")
            return None
        logger.info(f"Using {config.deepseek_model} at {config.deepseek_base_url}")
        return DeepSeekDecisionProvider(
            config.deepseek_api_key,
            base_url=config.deepseek_base_url,
            model=config.deepseek_model,
            timeout=config.model_timeout_seconds,
        )

    def apply_config(self, updates: Dict[str, Any]) -> Config:
        """
        Replace configuration with masked-secret semantics.

        The new config is validated and its components built immediately;
        the cycle controller switches over at its next tick.

        Raises:
            ValueError: If the merged configuration is invalid
        """
        new_config = self.config.merged_with(updates)
        components = self._build_components(new_config)
        self.config = new_config
        self.state.apply_config(new_config)
        self.cycle_controller.replace_components(new_config, *components)
        self.state.add_log("INFO", "Configuration updated via API")
        return new_config

    def set_running(self, running: bool) -> bool:
        self.state.set_running(running)
        return self.state.is_running

    def startup(self) -> bool:
        """Connectivity probes; False aborts startup."""
        return self.cycle_controller.startup()

    def run(self) -> None:
        """Block in the poll loop."""
        self.cycle_controller.run()

    def shutdown(self) -> None:
        """Stop the loop and release resources."""
        self.cycle_controller.shutdown()

    def register_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to a graceful stop."""
        self.cycle_controller.shutdown_service.register_signal_handlers()
