"""Data models for Miyomi."""

from miyomi.models.base import BaseModel, FrozenModel
from miyomi.models.market import (
    MarketRecord,
    MarketSource,
    Opportunity,
    Pick,
    Position,
    PriceMovement,
    SOURCE_PRIORITY,
)

__all__ = [
    "BaseModel",
    "FrozenModel",
    "MarketRecord",
    "MarketSource",
    "Opportunity",
    "Pick",
    "Position",
    "PriceMovement",
    "SOURCE_PRIORITY",
]
