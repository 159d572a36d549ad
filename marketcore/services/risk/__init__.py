"""
Trade Setup Engine

CONTRACT:
    Input:  TradeSetupInput (bars + levels + bias)
    Output: TradeSetup, or None

RESPONSIBILITIES:
    - Size stops and targets from ATR(14)
    - Anchor long entries on support, short entries on resistance
    - Clamp stops/targets to the recent trading range
    - Enforce the symbol's minimum reward:risk

PURE PYTHON - All rules are deterministic and auditable.

A setup that does not clear the minimum reward:risk is never produced.
"""

from marketcore.services.risk.interface import TradeSetupServiceInterface, TradeSetupInput
from marketcore.services.risk.service import TradeSetupService, get_trade_setup_service

__all__ = [
    "TradeSetupServiceInterface",
    "TradeSetupInput",
    "TradeSetupService",
    "get_trade_setup_service",
]
