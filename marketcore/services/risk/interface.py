"""
Trade Setup Service Interface

Defines the contract for the trade setup layer.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Optional

from marketcore.services.base import BaseService
from marketcore.schemas.market import Bar
from marketcore.schemas.indicators import Recommendation
from marketcore.schemas.trade import TradeSetup


@dataclass
class TradeSetupInput:
    """Input for trade setup generation."""

    symbol: str
    bars: list[Bar]
    support: Optional[float]
    resistance: Optional[float]
    recommendation: Recommendation = Recommendation.HOLD
    confidence: int = 50
    current_price: Optional[float] = None


class TradeSetupServiceInterface(BaseService[TradeSetupInput, Optional[TradeSetup]]):
    """
    Trade Setup Service Contract.

    INPUT: TradeSetupInput
        - symbol: Canonical symbol (sets precision and RR threshold)
        - bars: At least 20 canonical bars
        - support / resistance: From the pivot detector
        - recommendation / confidence: From the trend vote
        - current_price: Gated current price (defaults to last close)

    OUTPUT: TradeSetup, or None
        - None when neither scenario clears the minimum reward:risk.
          This is not an error.

    SCENARIOS:
        1. Long from support (requires support)
        2. Short from resistance (requires resistance)
        Stops and targets are ATR(14)-sized and clamped to the recent range.
    """

    @property
    def name(self) -> str:
        return "TradeSetupService"

    @abstractmethod
    async def execute(self, input_data: TradeSetupInput) -> Optional[TradeSetup]:
        """Build the best qualifying trade setup."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Trade setup service is always healthy (pure computation)."""
        pass
