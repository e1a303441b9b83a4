"""Attribution shortlinks for published picks."""

import secrets
import string
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from pydantic import Field

from miyomi.core.logging import LoggerMixin
from miyomi.models.base import BaseModel
from miyomi.models.market import Pick
from miyomi.storage.state_store import StateStore


SHORTLINKS_KEY = "shortlinks"
_ALPHABET = string.ascii_lowercase + string.digits


class Engagement(BaseModel):
    likes: int = 0
    recasts: int = 0
    replies: int = 0
    
    @property
    def total(self) -> int:
        return self.likes + self.recasts + self.replies


class Shortlink(BaseModel):
    """One tracked link pointing at a pick's market page."""
    
    id: str
    pick_id: str
    cast_hash: Optional[str] = None
    market_title: str
    market_url: Optional[str] = None
    position: str
    target_price: int
    confidence: float
    content_title: str = ""
    created_at: datetime
    clicks: int = 0
    engagement: Engagement = Field(default_factory=Engagement)
    pnl: Optional[Dict[str, float]] = None
    
    @property
    def reach(self) -> int:
        """Clicks plus likes and recasts."""
        return self.clicks + self.engagement.likes + self.engagement.recasts


class ShortlinkTracker(LoggerMixin):
    """Creates shortlinks and counts clicks and engagement against them."""
    
    def __init__(self, store: StateStore, base_url: str, code_length: int = 6):
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.code_length = code_length
    
    def url_for(self, link_id: str) -> str:
        return f"{self.base_url}/m/{link_id}"
    
    def _new_code(self, existing: Dict[str, Any]) -> str:
        while True:
            code = "".join(secrets.choice(_ALPHABET) for _ in range(self.code_length))
            if code not in existing:
                return code
    
    async def create(
        self,
        pick: Pick,
        content_title: str = "",
        now: Optional[datetime] = None
    ) -> Shortlink:
        now = now or datetime.now(timezone.utc)
        created: Dict[str, Shortlink] = {}
        
        def apply(links: Dict[str, Any]) -> Dict[str, Any]:
            link = Shortlink(
                id=self._new_code(links),
                pick_id=pick.id,
                market_title=pick.market.title,
                market_url=pick.market.url,
                position=pick.position,
                target_price=pick.target_price,
                confidence=pick.confidence,
                content_title=content_title,
                created_at=now,
            )
            links[link.id] = link.model_dump(mode="json")
            created["link"] = link
            return links
        
        await self.store.update(SHORTLINKS_KEY, apply, default={})
        link = created["link"]
        self.logger.info("Shortlink created", link_id=link.id, pick_id=pick.id)
        return link
    
    async def _modify(self, link_id: str, **changes: Any) -> Optional[Shortlink]:
        result: Dict[str, Shortlink] = {}
        
        def apply(links: Dict[str, Any]) -> Dict[str, Any]:
            if link_id in links:
                link = Shortlink(**links[link_id])
                link = link.model_copy(update=changes)
                links[link_id] = link.model_dump(mode="json")
                result["link"] = link
            return links
        
        await self.store.update(SHORTLINKS_KEY, apply, default={})
        return result.get("link")
    
    async def get(self, link_id: str) -> Optional[Shortlink]:
        links = await self.store.get(SHORTLINKS_KEY, {})
        data = links.get(link_id)
        return Shortlink(**data) if data else None
    
    async def all(self) -> List[Shortlink]:
        links = await self.store.get(SHORTLINKS_KEY, {})
        return [Shortlink(**data) for data in links.values()]
    
    async def find_by_cast_hash(self, cast_hash: str) -> Optional[Shortlink]:
        for link in await self.all():
            if link.cast_hash == cast_hash:
                return link
        return None
    
    async def attach_cast(self, link_id: str, cast_hash: str) -> Optional[Shortlink]:
        return await self._modify(link_id, cast_hash=cast_hash)
    
    async def track_click(self, link_id: str) -> Optional[Shortlink]:
        """Count one click; None for an unknown link."""
        link = await self.get(link_id)
        if link is None:
            return None
        link = await self._modify(link_id, clicks=link.clicks + 1)
        self.logger.debug("Click tracked", link_id=link_id, clicks=link.clicks)
        return link
    
    async def update_engagement(
        self,
        link_id: str,
        likes: Optional[int] = None,
        recasts: Optional[int] = None,
        replies: Optional[int] = None
    ) -> Optional[Shortlink]:
        link = await self.get(link_id)
        if link is None:
            return None
        current = link.engagement.model_dump()
        for name, value in (("likes", likes), ("recasts", recasts), ("replies", replies)):
            if value is not None:
                current[name] = value
        return await self._modify(link_id, engagement=Engagement(**current))
    
    async def update_pnl(self, link_id: str, entry_price: float, current_price: float) -> Optional[Shortlink]:
        unrealized = ((current_price - entry_price) / entry_price) * 100 if entry_price else 0.0
        return await self._modify(
            link_id,
            pnl={
                "entry_price": entry_price,
                "current_price": current_price,
                "unrealized_pnl": round(unrealized, 2),
            }
        )
    
    async def get_analytics(self, top: int = 5) -> Dict[str, Any]:
        links = await self.all()
        total_clicks = sum(link.clicks for link in links)
        with_pnl = [link for link in links if link.pnl is not None]
        avg_pnl = (
            sum(link.pnl["unrealized_pnl"] for link in with_pnl) / len(with_pnl)
            if with_pnl else 0.0
        )
        top_performers = sorted(links, key=lambda link: link.reach, reverse=True)[:top]
        
        return {
            "total_shortlinks": len(links),
            "total_clicks": total_clicks,
            "avg_clicks_per_link": total_clicks / len(links) if links else 0.0,
            "total_engagement": sum(link.engagement.total for link in links),
            "avg_pnl": avg_pnl,
            "top_performers": [link.id for link in top_performers],
        }
