"""Equity-banded strategy stages."""

import logging
from typing import Tuple

from warlord.models import StrategyStage

logger = logging.getLogger(__name__)


STAGE_1 = StrategyStage(
    key="STAGE_1",
    name="Launch (high-risk push)",
    min_equity=0.0,
    max_equity=20.0,
    leverage=20.0,
    risk_factor=0.8,
    allow_dca=True,
    allow_pyramiding=True,
    max_position_ratio=20.0,
    guidance=(
        "Launch stage: the account is small and high-risk, high-reward trades are allowed. "
        "If the trend is intact but price pulls back, averaging down (DCA) is permitted to lower the cost basis."
    ),
)

STAGE_2 = StrategyStage(
    key="STAGE_2",
    name="Rolling (capital accumulation)",
    min_equity=20.0,
    max_equity=80.0,
    leverage=10.0,
    risk_factor=0.5,
    allow_dca=True,
    allow_pyramiding=True,
    max_position_ratio=6.0,
    guidance=(
        "Accumulation stage: moderate risk appetite aiming for steady growth. "
        "Small DCA additions are allowed."
    ),
)

STAGE_3 = StrategyStage(
    key="STAGE_3",
    name="Steady (capital preservation)",
    min_equity=80.0,
    max_equity=None,
    leverage=5.0,
    risk_factor=0.125,  # Capital split into 8 parts
    allow_dca=False,
    allow_pyramiding=False,
    max_position_ratio=2.0,
    guidance=(
        "Steady stage: low risk appetite, protect principal first. "
        "No counter-trend averaging down; if wrong, take the loss."
    ),
)

STAGES: Tuple[StrategyStage, ...] = (STAGE_1, STAGE_2, STAGE_3)


def classify(total_equity: float) -> StrategyStage:
    """
    Select the stage whose equity band contains ``total_equity``.

    Bands are contiguous and half-open: [0, 20), [20, 80), [80, inf).
    Negative or NaN equity falls into the first band.

    Args:
        total_equity: Total account equity in USDT

    Returns:
        The active StrategyStage
    """
    for stage in STAGES:
        if stage.max_equity is None or total_equity < stage.max_equity:
            return stage
    return STAGES[-1]
