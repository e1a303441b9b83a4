"""Polymarket market data extractor."""

from typing import Any, Dict, List, Optional
from datetime import datetime

from miyomi.core.config import settings
from miyomi.extractors.base import BaseExtractor
from miyomi.models.market import MarketSource
from miyomi.transformers.market_normalizer import payload_close_time


class PolymarketExtractor(BaseExtractor):
    """Extractor for Polymarket's gamma markets API."""
    
    def __init__(self, *args: Any, base_url: Optional[str] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.base_url = base_url or settings.polymarket_base_url
    
    def get_source(self) -> MarketSource:
        return MarketSource.POLYMARKET
    
    def get_base_url(self) -> str:
        return self.base_url
    
    async def fetch_raw(self) -> List[Dict[str, Any]]:
        """Page through active markets with offset pagination up to the safety cap."""
        markets: List[Dict[str, Any]] = []
        offset = 0
        page_size = self.config.page_size
        
        while len(markets) < self.config.max_records:
            response = await self.make_request(
                "GET",
                "markets",
                params={
                    "active": "true",
                    "closed": "false",
                    "archived": "false",
                    "order": "volume24hr",
                    "ascending": "false",
                    "limit": page_size,
                    "offset": offset,
                }
            )
            page = self.extract_items_from_response(response)
            if not page:
                break
            
            markets.extend(page)
            self.logger.debug("Fetched Polymarket page", offset=offset, items_on_page=len(page))
            
            if len(page) < page_size:
                break
            offset += page_size
        
        return markets[:self.config.max_records]
    
    @staticmethod
    def extract_items_from_response(response: Any) -> List[Dict[str, Any]]:
        if isinstance(response, list):
            return response
        if isinstance(response, dict):
            items = response.get("data", response.get("markets", []))
            return items if isinstance(items, list) else []
        return []
    
    async def fetch_raw_market(self, market_id: str) -> Optional[Dict[str, Any]]:
        response = await self._get_or_none(f"markets/{market_id}")
        if isinstance(response, list):
            response = response[0] if response else None
        return response if isinstance(response, dict) else None
    
    def is_open(self, payload: Dict[str, Any], now: datetime) -> bool:
        return is_open_market(payload, now)


def is_open_market(payload: Dict[str, Any], now: datetime) -> bool:
    """Active, accepting orders and not past its end date."""
    if payload.get("closed") or payload.get("archived"):
        return False
    if payload.get("active") is False:
        return False
    if payload.get("acceptingOrders", payload.get("accepting_orders")) is False:
        return False
    
    closes_at = payload_close_time(MarketSource.POLYMARKET, payload)
    return closes_at is None or closes_at > now
