"""Market, opportunity and pick models."""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum

from pydantic import Field, field_validator

from miyomi.models.base import BaseModel, FrozenModel


class MarketSource(str, Enum):
    """Supported prediction market providers."""
    POLYMARKET = "polymarket"
    KALSHI = "kalshi"


# Lower rank = higher priority; used for dedupe order and importance.
SOURCE_PRIORITY: Dict[str, int] = {
    MarketSource.POLYMARKET.value: 1,
    MarketSource.KALSHI.value: 2,
}


class Position(str, Enum):
    """Recommended stance on a market."""
    YES = "YES"
    NO = "NO"
    SKIP = "SKIP"


class PriceMovement(str, Enum):
    """Coarse price behaviour label."""
    STABLE = "stable"
    VOLATILE = "volatile"
    TRENDING = "trending"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MarketRecord(FrozenModel):
    """Canonical representation of one prediction market."""
    
    source: MarketSource = Field(..., description="Originating provider")
    id: str = Field(..., min_length=1, description="Provider-scoped identifier")
    title: str = Field(..., min_length=1, description="Market question")
    category: Optional[str] = Field(None, description="Free-text topical tag")
    url: Optional[str] = Field(None, description="Market page")
    closes_at: datetime = Field(..., description="Resolution deadline (UTC)")
    yes_price: int = Field(..., ge=0, le=100, description="YES price in cents")
    no_price: int = Field(..., ge=0, le=100, description="NO price in cents")
    liquidity_score: float = Field(0.5, ge=0.0, le=1.0, description="Relative liquidity")
    liquidity: Optional[float] = Field(None, ge=0.0, description="Absolute liquidity in USD")
    volume_24h: float = Field(0.0, ge=0.0, description="24h traded volume")
    volume_total: float = Field(0.0, ge=0.0, description="Lifetime traded volume")
    price_change_24h: Optional[float] = Field(None, description="Provider-reported 24h YES move, cents")
    last_trade_time: Optional[datetime] = Field(None, description="Last trade timestamp")
    
    @field_validator("closes_at", "last_trade_time")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Store all timestamps as aware UTC."""
        return _as_utc(v) if v is not None else v
    
    @property
    def probability(self) -> float:
        """Market-implied probability of YES."""
        return self.yes_price / 100.0
    
    @property
    def source_priority(self) -> int:
        """Fixed rank of the originating provider."""
        return SOURCE_PRIORITY.get(self.source, len(SOURCE_PRIORITY) + 1)
    
    def hours_to_close(self, now: Optional[datetime] = None) -> float:
        """Hours until the market closes (negative once closed)."""
        now = _as_utc(now) if now else datetime.now(timezone.utc)
        return (self.closes_at - now).total_seconds() / 3600.0


class Opportunity(FrozenModel):
    """A scored market."""
    
    market: MarketRecord
    score: float
    reasoning: List[str]
    delta_24h: float = Field(0.0, description="24h price move in cents")
    time_to_close: float = Field(..., description="Hours until close")
    recommended_position: Position
    
    # Scoring diagnostics
    inefficiency_score: float = 0.0
    cultural_relevance: float = 0.0
    volume_anomaly: bool = False
    price_movement: PriceMovement = PriceMovement.STABLE
    contrarian_angle: str = ""
    liquidity_rank: float = 0.0
    narrative_boost: float = 0.0
    
    @property
    def is_actionable(self) -> bool:
        """True unless the scorer said SKIP."""
        return self.recommended_position != Position.SKIP


class Pick(BaseModel):
    """The selected opportunity for a run."""
    
    id: str
    timestamp: datetime
    opportunity: Opportunity
    thesis: List[str]
    confidence: float = Field(..., ge=0.0, le=1.0)
    target_price: int
    stop_loss: int
    expires_at: datetime
    
    @property
    def market(self) -> MarketRecord:
        return self.opportunity.market
    
    @property
    def position(self) -> str:
        return self.opportunity.recommended_position
    
    @property
    def entry_price(self) -> int:
        """Price of the held contract side when the pick was made."""
        if self.position == Position.YES:
            return self.market.yes_price
        return self.market.no_price
    
    def to_record(self) -> Dict[str, Any]:
        """Flat, JSON-safe record for storage collaborators."""
        market = self.market
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "market_source": market.source,
            "market_id": market.id,
            "market_title": market.title,
            "market_url": market.url,
            "category": market.category,
            "position": self.position,
            "yes_price": market.yes_price,
            "no_price": market.no_price,
            "entry_price": self.entry_price,
            "score": self.opportunity.score,
            "thesis": list(self.thesis),
            "confidence": self.confidence,
            "target_price": self.target_price,
            "stop_loss": self.stop_loss,
            "expires_at": self.expires_at.isoformat(),
            "closes_at": market.closes_at.isoformat(),
        }
