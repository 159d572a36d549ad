"""
CONTRACT 3: Trade Setup

Input: TradeSetupInput (bars + levels + bias)
Output: TradeSetup, or None when no scenario clears the reward:risk floor

Pure arithmetic on bars. Prices are rounded to the symbol's precision.
"""

from enum import Enum
from pydantic import BaseModel, Field


class TradeDirection(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class TradeSetup(BaseModel):
    """
    Risk-bounded trade proposal.

    risk_reward is always >= the symbol's minimum threshold; setups that
    fall short are never built.
    """

    direction: TradeDirection
    entry: float
    stop_loss: float
    take_profit: float
    risk_reward: float = Field(..., ge=0)
    confidence: int = Field(..., ge=0, le=100)
    basis: str
    current_price: float
    atr14: float
