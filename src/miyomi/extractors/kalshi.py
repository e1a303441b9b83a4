"""Kalshi market data extractor."""

from typing import Any, Dict, List, Optional
from datetime import datetime

from miyomi.core.config import settings
from miyomi.extractors.base import BaseExtractor
from miyomi.models.market import MarketSource
from miyomi.transformers.market_normalizer import payload_close_time

OPEN_STATUSES = {"active", "open"}


class KalshiExtractor(BaseExtractor):
    """Extractor for Kalshi's trade-api v2 markets endpoint."""
    
    def __init__(
        self,
        *args: Any,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        series_ticker: Optional[str] = None,
        **kwargs: Any
    ):
        self.api_key = api_key if api_key is not None else settings.kalshi_api_key
        super().__init__(*args, **kwargs)
        self.base_url = base_url or settings.kalshi_base_url
        self.series_ticker = series_ticker
    
    def get_source(self) -> MarketSource:
        return MarketSource.KALSHI
    
    def get_base_url(self) -> str:
        return self.base_url
    
    def get_auth_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        # Market data is public; the key only raises rate limits
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers
    
    async def fetch_raw(self) -> List[Dict[str, Any]]:
        """Page through open markets with cursor pagination up to the safety cap."""
        markets: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        
        while len(markets) < self.config.max_records:
            params: Dict[str, Any] = {"status": "open", "limit": self.config.page_size}
            if cursor:
                params["cursor"] = cursor
            if self.series_ticker:
                params["series_ticker"] = self.series_ticker
            
            response = await self.make_request("GET", "markets", params=params)
            page = response.get("markets") if isinstance(response, dict) else None
            if not isinstance(page, list) or not page:
                break
            
            markets.extend(page)
            cursor = response.get("cursor")
            if not cursor:
                break
        
        return markets[:self.config.max_records]
    
    async def fetch_raw_market(self, market_id: str) -> Optional[Dict[str, Any]]:
        response = await self._get_or_none(f"markets/{market_id}")
        market = response.get("market") if isinstance(response, dict) else None
        return market if isinstance(market, dict) else None
    
    def is_open(self, payload: Dict[str, Any], now: datetime) -> bool:
        return is_open_market(payload, now)


def is_open_market(payload: Dict[str, Any], now: datetime) -> bool:
    """Open for trading and not past its close time."""
    status = str(payload.get("status", "")).lower()
    if status and status not in OPEN_STATUSES:
        return False
    
    closes_at = payload_close_time(MarketSource.KALSHI, payload)
    return closes_at is None or closes_at > now
