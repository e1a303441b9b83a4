"""
Pick Ledger - History and simulated performance of published picks

Positions are never traded; performance is the paper move of the held
contract side since the pick was made, in cents.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from enum import Enum

from miyomi.core.logging import LoggerMixin
from miyomi.models.market import Pick, Position
from miyomi.storage.state_store import StateStore


PICKS_KEY = "picks"
META_KEY = "ledger"


class PerformanceStatus(str, Enum):
    WINNING = "winning"
    LOSING = "losing"
    FLAT = "flat"


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_performance(
    record: Dict[str, Any],
    current_yes_price: int,
    now: datetime,
    flat_band: float = 5.0
) -> Dict[str, Any]:
    """Paper PnL of a pick record given the market's current YES price."""
    if record["position"] == Position.YES:
        current_price = current_yes_price
    else:
        current_price = 100 - current_yes_price
    
    entry_price = record["entry_price"]
    pnl = current_price - entry_price
    pnl_percent = (pnl / entry_price) * 100 if entry_price else 0.0
    
    if pnl > flat_band:
        status = PerformanceStatus.WINNING
    elif pnl < -flat_band:
        status = PerformanceStatus.LOSING
    else:
        status = PerformanceStatus.FLAT
    
    return {
        "current_price": current_price,
        "pnl": pnl,
        "pnl_percent": round(pnl_percent, 2),
        "status": status.value,
        "last_updated": now.isoformat(),
    }


class PickLedger(LoggerMixin):
    """Pick history persisted through a ``StateStore``."""
    
    def __init__(self, store: StateStore):
        self.store = store
    
    async def record_pick(self, pick: Pick) -> Dict[str, Any]:
        record = pick.to_record()
        await self.store.update(PICKS_KEY, lambda picks: picks + [record], default=[])
        await self.store.update(
            META_KEY,
            lambda meta: {
                **meta,
                "total_picks": meta.get("total_picks", 0) + 1,
                "last_pick_time": record["timestamp"],
            },
            default={}
        )
        self.logger.info("Pick recorded", pick_id=pick.id, market=record["market_title"][:60])
        return record
    
    async def annotate(self, pick_id: str, **fields: Any) -> Optional[Dict[str, Any]]:
        """Merge extra fields (cast hash, post text, shortlink) into a pick record."""
        found: Dict[str, Any] = {}
        
        def apply(picks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            for record in picks:
                if record["id"] == pick_id:
                    record.update(fields)
                    found["record"] = record
            return picks
        
        await self.store.update(PICKS_KEY, apply, default=[])
        return found.get("record")
    
    async def history(self) -> List[Dict[str, Any]]:
        return await self.store.get(PICKS_KEY, [])
    
    async def get_pick(self, pick_id: str) -> Optional[Dict[str, Any]]:
        for record in await self.history():
            if record["id"] == pick_id:
                return record
        return None
    
    async def current_pick(self) -> Optional[Dict[str, Any]]:
        """Most recently recorded pick."""
        picks = await self.history()
        return picks[-1] if picks else None
    
    async def update_performance(
        self,
        pick_id: str,
        current_yes_price: int,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """Recompute and store the paper performance of one pick."""
        now = now or datetime.now(timezone.utc)
        result: Dict[str, Any] = {}
        
        def apply(picks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            for record in picks:
                if record["id"] == pick_id:
                    record["performance"] = compute_performance(record, current_yes_price, now)
                    result["performance"] = record["performance"]
            return picks
        
        await self.store.update(PICKS_KEY, apply, default=[])
        performance = result.get("performance")
        if performance is None:
            self.logger.warning("Pick not found for performance update", pick_id=pick_id)
        else:
            self.logger.info(
                "Performance updated",
                pick_id=pick_id,
                pnl=performance["pnl"],
                status=performance["status"]
            )
        return performance
    
    async def recent_picks(self, days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=days)
        return [r for r in await self.history() if _parse_time(r["timestamp"]) > cutoff]
    
    async def win_rate(self) -> float:
        """Share of all picks currently marked winning."""
        picks = await self.history()
        if not picks:
            return 0.0
        wins = sum(
            1 for r in picks
            if r.get("performance", {}).get("status") == PerformanceStatus.WINNING.value
        )
        return wins / len(picks)
    
    async def best_pick(self) -> Optional[Dict[str, Any]]:
        scored = [r for r in await self.history() if "performance" in r]
        return max(scored, key=lambda r: r["performance"]["pnl_percent"], default=None)
    
    async def worst_pick(self) -> Optional[Dict[str, Any]]:
        scored = [r for r in await self.history() if "performance" in r]
        return min(scored, key=lambda r: r["performance"]["pnl_percent"], default=None)
    
    async def prune(self, days_to_keep: int = 30, now: Optional[datetime] = None) -> int:
        """Drop picks older than ``days_to_keep``; returns how many were removed."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=days_to_keep)
        removed: Dict[str, int] = {"count": 0}
        
        def apply(picks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            kept = [r for r in picks if _parse_time(r["timestamp"]) > cutoff]
            removed["count"] = len(picks) - len(kept)
            return kept
        
        await self.store.update(PICKS_KEY, apply, default=[])
        if removed["count"]:
            self.logger.info("Pruned old picks", removed=removed["count"], days_to_keep=days_to_keep)
        return removed["count"]
    
    async def get_statistics(self) -> Dict[str, Any]:
        meta = await self.store.get(META_KEY, {})
        best = await self.best_pick()
        worst = await self.worst_pick()
        return {
            "total_picks": meta.get("total_picks", 0),
            "stored_picks": len(await self.history()),
            "last_pick_time": meta.get("last_pick_time"),
            "win_rate": await self.win_rate(),
            "best_pick": best["id"] if best else None,
            "worst_pick": worst["id"] if worst else None,
        }
