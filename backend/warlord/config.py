"""Configuration module for the Warlord swap trading controller."""

import os
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict
from dotenv import load_dotenv


MASKED_SECRET = "***"
SECRET_FIELDS = ("okx_api_key", "okx_secret_key", "okx_passphrase", "deepseek_api_key")

_TRUE_VALUES = ("1", "true", "yes", "y")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: str) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        raise ValueError(f"{name} must be a valid float")


def _env_int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        raise ValueError(f"{name} must be a valid integer")


@dataclass(frozen=True)
class RiskSettings:
    """Hard risk constants used by the analyzer and the reconciler."""

    # Per-side fee estimate; round trip is twice this
    fee_rate: float = 0.0006

    # Minimum notional (margin * leverage) in USDT
    min_entry_notional: float = 100.0
    min_add_notional: float = 50.0

    # Fraction of available equity that may ever be committed as margin
    safety_reserve_fraction: float = 0.90
    # Confidence (0-100) required before a small order is lifted to the floor
    floor_boost_min_confidence: float = 40.0

    # Max tolerated margin loss on a fresh stop (0.20 = 20% of margin)
    max_loss_fraction: float = 0.20
    min_contracts: float = 0.01

    # Stops must sit at least this far from price (fraction of price)
    stop_safety_buffer: float = 0.002
    trend_broken_stop_offset: float = 0.01
    # MACD histogram tolerance relative to price for trend alignment
    momentum_tolerance: float = 0.0015

    # DCA drawdown band in percent of entry
    dca_min_drawdown_pct: float = 1.5
    dca_max_drawdown_pct: float = 8.0

    # Profit ladder, distance from break-even in percent of entry
    breakeven_buffer_pct: float = 0.2
    partial_lock_pct: float = 0.8
    deep_lock_pct: float = 2.0
    partial_lock_fraction: float = 0.40
    deep_lock_fraction: float = 0.80

    pyramid_min_roi_pct: float = 10.0

    rollover_enabled: bool = True
    rollover_upl_ratio_pct: float = 50.0
    rollover_fraction: float = 0.5

    @classmethod
    def from_env(cls) -> "RiskSettings":
        """
        Load risk overrides from environment variables.

        Every field can be overridden by its upper-case name prefixed with
        ``RISK_`` (e.g. ``RISK_MIN_ENTRY_NOTIONAL=50``).

        Raises:
            ValueError: If a value is malformed or out of range
        """
        defaults = cls()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            env_name = f"RISK_{f.name.upper()}"
            default = getattr(defaults, f.name)
            if isinstance(default, bool):
                values[f.name] = _env_bool(env_name, str(default).lower())
            else:
                values[f.name] = _env_float(env_name, str(default))

        settings = cls(**values)
        settings.validate()
        return settings

    def validate(self) -> None:
        if not 0.0 <= self.fee_rate < 0.05:
            raise ValueError("RISK_FEE_RATE must be between 0.0 and 0.05")
        if self.min_entry_notional < 0 or self.min_add_notional < 0:
            raise ValueError("Minimum notional floors must be non-negative")
        if not 0.0 < self.safety_reserve_fraction <= 1.0:
            raise ValueError("RISK_SAFETY_RESERVE_FRACTION must be in (0, 1]")
        if not 0.0 < self.max_loss_fraction <= 1.0:
            raise ValueError("RISK_MAX_LOSS_FRACTION must be in (0, 1]")
        if self.min_contracts <= 0:
            raise ValueError("RISK_MIN_CONTRACTS must be greater than 0")
        if not self.breakeven_buffer_pct <= self.partial_lock_pct <= self.deep_lock_pct:
            raise ValueError("Profit ladder thresholds must be ascending")
        for name in ("partial_lock_fraction", "deep_lock_fraction", "rollover_fraction"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"RISK_{name.upper()} must be between 0.0 and 1.0")
        if self.dca_min_drawdown_pct >= self.dca_max_drawdown_pct:
            raise ValueError("RISK_DCA_MIN_DRAWDOWN_PCT must be below RISK_DCA_MAX_DRAWDOWN_PCT")


@dataclass
class Config:
    """Configuration for the controller loaded from environment variables."""

    # Credentials
    okx_api_key: str
    okx_secret_key: str
    okx_passphrase: str
    deepseek_api_key: str

    # Mode
    is_simulation: bool

    # Instrument
    instrument_id: str = "ETH-USDT-SWAP"
    contract_value: float = 0.1
    candle_bar: str = "15m"
    candle_limit: int = 100

    # Model
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"
    model_timeout_seconds: float = 60.0

    # Scheduling
    poll_interval_seconds: int = 5
    analysis_interval_seconds: int = 15
    auto_start: bool = False

    # Rolling buffers
    history_limit: int = 1000
    log_limit: int = 200

    # Status server
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    risk: RiskSettings = field(default_factory=RiskSettings)

    @classmethod
    def from_env(cls) -> "Config":
        """
        Load configuration from environment variables with validation.

        Returns:
            Config: Validated configuration object

        Raises:
            ValueError: If required fields are missing or invalid
        """
        # Load .env file if it exists
        load_dotenv()

        is_simulation = _env_bool("IS_SIMULATION", "true")

        config = cls(
            okx_api_key=os.getenv("OKX_API_KEY", "").strip(),
            okx_secret_key=os.getenv("OKX_SECRET_KEY", "").strip(),
            okx_passphrase=os.getenv("OKX_PASSPHRASE", "").strip(),
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY", "").strip(),
            is_simulation=is_simulation,
            instrument_id=os.getenv("INSTRUMENT_ID", "ETH-USDT-SWAP").strip(),
            contract_value=_env_float("CONTRACT_VALUE", "0.1"),
            candle_bar=os.getenv("CANDLE_BAR", "15m").strip(),
            candle_limit=_env_int("CANDLE_LIMIT", "100"),
            deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com").strip(),
            deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat").strip(),
            model_timeout_seconds=_env_float("MODEL_TIMEOUT_SECONDS", "60"),
            poll_interval_seconds=_env_int("POLL_INTERVAL_SECONDS", "5"),
            analysis_interval_seconds=_env_int("ANALYSIS_INTERVAL_SECONDS", "15"),
            auto_start=_env_bool("AUTO_START", "false"),
            history_limit=_env_int("HISTORY_LIMIT", "1000"),
            log_limit=_env_int("LOG_LIMIT", "200"),
            api_host=os.getenv("API_HOST", "0.0.0.0").strip(),
            api_port=_env_int("API_PORT", "3000"),
            risk=RiskSettings.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Validate cross-field constraints.

        Raises:
            ValueError: If a field is out of range or credentials are missing
        """
        if not self.is_simulation:
            required_fields = {
                "OKX_API_KEY": self.okx_api_key,
                "OKX_SECRET_KEY": self.okx_secret_key,
                "OKX_PASSPHRASE": self.okx_passphrase,
            }
            missing_fields = [name for name, value in required_fields.items() if not value]
            if missing_fields:
                raise ValueError(
                    f"Missing required environment variables for live trading: {', '.join(missing_fields)}"
                )

        if not self.instrument_id:
            raise ValueError("INSTRUMENT_ID must not be empty")
        if self.contract_value <= 0:
            raise ValueError("CONTRACT_VALUE must be greater than 0")
        if self.candle_limit < 30:
            raise ValueError("CANDLE_LIMIT must be at least 30 to compute MACD")
        if self.poll_interval_seconds <= 0:
            raise ValueError("POLL_INTERVAL_SECONDS must be greater than 0")
        if self.analysis_interval_seconds < self.poll_interval_seconds:
            raise ValueError("ANALYSIS_INTERVAL_SECONDS must be at least POLL_INTERVAL_SECONDS")
        if self.model_timeout_seconds <= 0:
            raise ValueError("MODEL_TIMEOUT_SECONDS must be greater than 0")
        if self.history_limit <= 0 or self.log_limit <= 0:
            raise ValueError("HISTORY_LIMIT and LOG_LIMIT must be greater than 0")
        self.risk.validate()

    def merged_with(self, updates: Dict[str, Any]) -> "Config":
        """
        Return a copy with ``updates`` applied.

        Secrets equal to the mask sentinel keep their current value, unknown
        keys are ignored and ``None`` means "leave unchanged".

        Args:
            updates: Partial configuration (snake_case field names)

        Returns:
            New validated Config
        """
        known = {f.name for f in fields(self)} - {"risk"}
        changes: Dict[str, Any] = {}
        for key, value in updates.items():
            if key not in known or value is None:
                continue
            if key in SECRET_FIELDS and value == MASKED_SECRET:
                continue
            changes[key] = value.strip() if isinstance(value, str) else value

        merged = replace(self, **changes)
        merged.validate()
        return merged

    def masked(self) -> Dict[str, Any]:
        """Dictionary view of the config with every secret replaced by the sentinel."""
        data = asdict(self)
        for name in SECRET_FIELDS:
            data[name] = MASKED_SECRET
        return data
