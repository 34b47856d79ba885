"""In-process state shared by the cycle controller and the status server."""

import itertools
import logging
import time
from collections import deque
from dataclasses import asdict
from typing import Any, Callable, Deque, Dict, List, Optional

from warlord.config import Config
from warlord.models import AccountContext, Action, FinalDecision, MarketData, SystemLog

logger = logging.getLogger(__name__)

LOG_TYPES = ("INFO", "SUCCESS", "WARNING", "ERROR", "TRADE")
_LOG_LEVELS = {"WARNING": logging.WARNING, "ERROR": logging.ERROR}

ONE_HOUR_MS = 60 * 60 * 1000
ACTION_HISTORY_LIMIT = 50


class EngineState:
    """
    Latest snapshots, decision history and the log buffer.

    Only the cycle controller writes; the status server reads whatever is
    current, so a fresh market snapshot next to an older decision is a
    normal state, not an error.
    """

    def __init__(self, config: Config, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.config = config
        self.is_running = config.auto_start
        self.market_data: Optional[MarketData] = None
        self.account_data: Optional[AccountContext] = None
        self.latest_decision: Optional[FinalDecision] = None
        # Newest first
        self.history: Deque[FinalDecision] = deque(maxlen=config.history_limit)
        # Oldest first
        self.logs: Deque[SystemLog] = deque(maxlen=config.log_limit)
        self.last_analysis_time = 0.0
        self._log_ids = itertools.count(1)

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def add_log(self, log_type: str, message: str) -> SystemLog:
        """Append to the bounded buffer and mirror to the Python logger."""
        if log_type not in LOG_TYPES:
            raise ValueError(f"Unknown log type: {log_type}")
        timestamp = self.now_ms()
        entry = SystemLog(id=f"{timestamp}-{next(self._log_ids)}", timestamp=timestamp, type=log_type, message=message)
        self.logs.append(entry)
        logger.log(_LOG_LEVELS.get(log_type, logging.INFO), f"[{log_type}] {message}")
        return entry

    def record_decision(self, decision: FinalDecision) -> None:
        self.latest_decision = decision
        self.history.appendleft(decision)

    def set_running(self, running: bool) -> None:
        self.is_running = running
        self.add_log("INFO", ">>> Strategy engine started <<<" if running else ">>> Strategy engine paused <<<")

    def apply_config(self, config: Config) -> None:
        """Swap config, resizing the buffers if their limits changed."""
        if config.history_limit != self.history.maxlen:
            self.history = deque(self.history, maxlen=config.history_limit)
        if config.log_limit != self.logs.maxlen:
            self.logs = deque(self.logs, maxlen=config.log_limit)
        self.config = config

    def recent_decisions(self, window_ms: int = ONE_HOUR_MS) -> List[FinalDecision]:
        cutoff = self.now_ms() - window_ms
        return [d for d in list(self.history) if d.timestamp > cutoff]

    def action_decisions(self, limit: int = ACTION_HISTORY_LIMIT) -> List[FinalDecision]:
        actions = [d for d in list(self.history) if d.action != Action.HOLD]
        return actions[:limit]

    def status(self) -> Dict[str, Any]:
        """Serializable snapshot for the status interface (secrets masked)."""
        return {
            "is_running": self.is_running,
            "config": self.config.masked(),
            "market_data": asdict(self.market_data) if self.market_data else None,
            "account_data": asdict(self.account_data) if self.account_data else None,
            "latest_decision": self.latest_decision.to_dict() if self.latest_decision else None,
            "logs": [asdict(entry) for entry in list(self.logs)],
        }

    def history_view(self) -> Dict[str, Any]:
        return {
            "recent": [d.to_dict() for d in self.recent_decisions()],
            "actions": [d.to_dict() for d in self.action_decisions()],
        }
