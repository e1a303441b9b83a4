"""Fixture market source replaying bundled provider payloads.

Fixture payloads carry a ``closes_in_hours`` offset instead of an absolute
close time so the data stays open relative to the current clock. Payloads go
through the same open-market filter and normalizer as live data.
"""

import copy
import json
from importlib import resources
from typing import Any, Callable, Dict, List, Optional, Union
from datetime import datetime, timedelta, timezone

from miyomi.extractors import kalshi, polymarket
from miyomi.extractors.base import BaseExtractor
from miyomi.models.market import MarketSource

# Close-time field and open-market check per provider
_PROVIDER_SHAPES = {
    MarketSource.POLYMARKET.value: ("endDate", polymarket.is_open_market),
    MarketSource.KALSHI.value: ("close_time", kalshi.is_open_market),
}


def load_fixture_payloads(source: Union[MarketSource, str]) -> List[Dict[str, Any]]:
    """Load the bundled payloads for a provider."""
    source_key = MarketSource(source).value
    text = resources.files("miyomi.fixtures").joinpath(f"{source_key}.json").read_text(encoding="utf-8")
    return json.loads(text)


class FixtureExtractor(BaseExtractor):
    """Market source backed by static payloads instead of HTTP."""
    
    def __init__(
        self,
        source: Union[MarketSource, str],
        payloads: Optional[List[Dict[str, Any]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs: Any
    ):
        super().__init__(**kwargs)
        self.source = MarketSource(source)
        self.payloads = payloads if payloads is not None else load_fixture_payloads(self.source)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
    
    def get_source(self) -> MarketSource:
        return self.source
    
    async def fetch_raw(self) -> List[Dict[str, Any]]:
        now = self.clock()
        return [self._materialize(payload, now) for payload in self.payloads[:self.config.max_records]]
    
    async def fetch_raw_market(self, market_id: str) -> Optional[Dict[str, Any]]:
        id_field = "ticker" if self.source == MarketSource.KALSHI else "id"
        for payload in self.payloads:
            if str(payload.get(id_field)) == market_id:
                return self._materialize(payload, self.clock())
        return None
    
    def _materialize(self, payload: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        """Copy a payload, turning its close-time offset into an absolute time."""
        close_field, _ = _PROVIDER_SHAPES[self.source.value]
        market = copy.deepcopy(payload)
        offset = market.pop("closes_in_hours", None)
        if offset is not None:
            market[close_field] = (now + timedelta(hours=float(offset))).isoformat()
        return market
    
    def is_open(self, payload: Dict[str, Any], now: datetime) -> bool:
        _, check = _PROVIDER_SHAPES[self.source.value]
        return check(payload, now)
