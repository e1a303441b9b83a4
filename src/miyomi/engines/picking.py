"""
Pick Selection Engine

Chooses the single best non-SKIP opportunity and turns it into a ``Pick``
with simulated target, stop-loss and confidence figures. Prices refer to the
held contract side: a NO pick is priced off ``no_price``.
"""

import uuid
from typing import Callable, Optional, Sequence
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass

from miyomi.core.logging import LoggerMixin
from miyomi.models.market import Opportunity, Pick, Position


@dataclass
class PickerConfig:
    """Configuration for pick sizing."""
    target_offset: int = 20
    stop_offset: int = 10
    min_price: int = 5
    max_price: int = 95
    max_confidence: float = 0.9
    expiry_hours: int = 24


def _default_pick_id(now: datetime) -> str:
    return f"pick-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"


class MarketPicker(LoggerMixin):
    """Selects the daily pick from scored opportunities."""
    
    def __init__(
        self,
        config: Optional[PickerConfig] = None,
        id_factory: Optional[Callable[[datetime], str]] = None,
    ):
        self.config = config or PickerConfig()
        self.id_factory = id_factory or _default_pick_id
    
    def pick(self, opportunities: Sequence[Opportunity], now: Optional[datetime] = None) -> Optional[Pick]:
        """
        Return the highest scoring actionable opportunity as a Pick.
        
        Ties keep input order. ``None`` means no action today.
        """
        candidates = sorted(
            (opp for opp in opportunities if opp.is_actionable),
            key=lambda opp: opp.score,
            reverse=True,
        )
        if not candidates:
            self.logger.info("No actionable opportunity", considered=len(opportunities))
            return None
        
        pick = self.create_pick(candidates[0], now)
        self.logger.info(
            "Pick selected",
            pick_id=pick.id,
            market=pick.market.title[:60],
            position=pick.position,
            confidence=pick.confidence
        )
        return pick
    
    def create_pick(self, opportunity: Opportunity, now: Optional[datetime] = None) -> Pick:
        """Build a Pick for one opportunity."""
        if not opportunity.is_actionable:
            raise ValueError("Cannot create a pick from a SKIP opportunity")
        
        now = now or datetime.now(timezone.utc)
        side_price = self.side_price(opportunity)
        
        return Pick(
            id=self.id_factory(now),
            timestamp=now,
            opportunity=opportunity,
            thesis=list(opportunity.reasoning),
            confidence=self.confidence(opportunity.score),
            target_price=self._clamp(side_price + self.config.target_offset),
            stop_loss=self._clamp(side_price - self.config.stop_offset),
            expires_at=now + timedelta(hours=self.config.expiry_hours),
        )
    
    @staticmethod
    def side_price(opportunity: Opportunity) -> int:
        market = opportunity.market
        if opportunity.recommended_position == Position.NO:
            return market.no_price
        return market.yes_price
    
    def confidence(self, score: float) -> float:
        return max(0.0, min(self.config.max_confidence, score / 100.0))
    
    def _clamp(self, price: int) -> int:
        return max(self.config.min_price, min(self.config.max_price, price))
