"""
Market Record Normalizer - Converts provider payloads into MarketRecords

Each provider ships its own JSON shape. This module absorbs the variance and
produces one canonical, immutable ``MarketRecord`` per market, or ``None`` when
a payload is missing required fields. Failures never raise to the caller.
"""

import json
import math
from typing import Any, Callable, Dict, List, Optional, Union
from datetime import datetime, timezone
from dataclasses import dataclass

from pydantic import ValidationError

from miyomi.core.exceptions import ValidationFailure
from miyomi.core.logging import LoggerMixin
from miyomi.models.market import MarketRecord, MarketSource


@dataclass
class NormalizationConfig:
    """Configuration for market payload normalization."""
    default_liquidity_score: float = 0.5
    default_volume_24h: float = 0.0
    
    # liquidity_score = min(1, raw / scale)
    polymarket_liquidity_scale: float = 100_000.0
    kalshi_open_interest_scale: float = 10_000.0
    
    polymarket_market_url: str = "https://polymarket.com/event/{slug}"
    kalshi_market_url: str = "https://kalshi.com/markets/{ticker}"


def _first(data: Dict[str, Any], *keys: str) -> Any:
    """Return the first present, non-empty value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _cents(value: float) -> int:
    if not math.isfinite(value):
        raise ValidationFailure("price", f"not a finite price: {value}")
    return int(_clamp(round(value), 0, 100))


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """Parse ISO strings, date-only strings, epoch seconds/millis or datetimes to aware UTC."""
    if value is None or value == "":
        return None
    
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        return None


# Close-time fields per provider, in lookup order
CLOSE_TIME_KEYS = {
    MarketSource.POLYMARKET.value: ("endDate", "end_date_iso", "endDateIso"),
    MarketSource.KALSHI.value: ("close_time", "expiration_time"),
}


def payload_close_time(source: Union[MarketSource, str], payload: Dict[str, Any]) -> Optional[datetime]:
    """Close time of a raw provider payload, or None when absent or unparseable."""
    return parse_timestamp(_first(payload, *CLOSE_TIME_KEYS[MarketSource(source).value]))


def _parse_list(value: Any) -> List[Any]:
    """Polymarket ships some arrays as JSON-encoded strings."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return []
    return value if isinstance(value, list) else []


class MarketNormalizer(LoggerMixin):
    """
    Normalizer for converting provider payloads into ``MarketRecord`` instances.
    
    Required fields are the market id, title, close time and YES price. Prices
    are coerced to integer cents and clamped into [0, 100]; missing optional
    fields receive defaults. A payload that cannot satisfy the required fields
    yields ``None`` and is counted in the statistics.
    """
    
    def __init__(self, config: Optional[NormalizationConfig] = None):
        self.config = config or NormalizationConfig()
        self._parsers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            MarketSource.POLYMARKET.value: self._parse_polymarket,
            MarketSource.KALSHI.value: self._parse_kalshi,
        }
        self.reset_statistics()
    
    def normalize(self, source: Union[MarketSource, str], payload: Dict[str, Any]) -> Optional[MarketRecord]:
        """Normalize one provider payload, or return None if it is invalid."""
        source_key = MarketSource(source).value
        self.normalization_stats["total_processed"] += 1
        
        try:
            if not isinstance(payload, dict):
                raise ValidationFailure("payload", "expected a JSON object")
            fields = self._parsers[source_key](payload)
            record = MarketRecord(source=source_key, **fields)
        except (ValidationFailure, ValidationError, ValueError, ArithmeticError, OSError) as e:
            self.normalization_stats["failed_normalizations"] += 1
            self.logger.debug("Dropped invalid market payload", source=source_key, reason=str(e))
            return None
        
        self.normalization_stats["successful_normalizations"] += 1
        return record
    
    def normalize_batch(
        self,
        source: Union[MarketSource, str],
        payloads: List[Dict[str, Any]]
    ) -> List[MarketRecord]:
        """Normalize many payloads, silently dropping invalid ones."""
        records = []
        for payload in payloads:
            record = self.normalize(source, payload)
            if record is not None:
                records.append(record)
        return records
    
    def _parse_polymarket(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Map a Polymarket (gamma or CLOB) market onto MarketRecord fields."""
        market_id = _first(data, "id", "conditionId", "condition_id")
        title = _first(data, "question", "title")
        closes_at = payload_close_time(MarketSource.POLYMARKET, data)
        
        yes_probability, no_probability = self._polymarket_probabilities(data)
        self._require(market_id=market_id, title=title, closes_at=closes_at, yes_price=yes_probability)
        
        yes_price = _cents(yes_probability * 100)
        no_price = _cents(no_probability * 100) if no_probability is not None else 100 - yes_price
        
        liquidity = _to_float(_first(data, "liquidityNum", "liquidity"))
        liquidity_score = (
            min(1.0, max(0.0, liquidity) / self.config.polymarket_liquidity_scale)
            if liquidity is not None else self.config.default_liquidity_score
        )
        
        slug = _first(data, "slug", "market_slug")
        one_day_change = _to_float(data.get("oneDayPriceChange"))
        
        return {
            "id": str(market_id),
            "title": str(title).strip(),
            "category": _first(data, "category") or None,
            "url": self.config.polymarket_market_url.format(slug=slug) if slug else None,
            "closes_at": closes_at,
            "yes_price": yes_price,
            "no_price": no_price,
            "liquidity_score": liquidity_score,
            "liquidity": max(0.0, liquidity) if liquidity is not None else None,
            "volume_24h": self._volume(_first(data, "volume24hr", "volume_24hr", "volume24hrClob")),
            "volume_total": self._volume(_first(data, "volumeNum", "volume")),
            "price_change_24h": _finite(one_day_change * 100) if one_day_change is not None else None,
            "last_trade_time": parse_timestamp(_first(data, "updatedAt", "updated_at")),
        }
    
    def _polymarket_probabilities(self, data: Dict[str, Any]) -> tuple:
        """Return (yes, no) probabilities; either may be None."""
        prices = [_to_float(p) for p in _parse_list(data.get("outcomePrices"))]
        if prices and prices[0] is not None:
            no_probability = prices[1] if len(prices) > 1 else None
            return prices[0], no_probability
        
        tokens = data.get("tokens")
        if isinstance(tokens, list) and tokens:
            by_outcome = {
                str(token.get("outcome", "")).lower(): _to_float(token.get("price"))
                for token in tokens if isinstance(token, dict)
            }
            yes = by_outcome.get("yes", _to_float(tokens[0].get("price")) if isinstance(tokens[0], dict) else None)
            no = by_outcome.get("no")
            if no is None and len(tokens) > 1 and isinstance(tokens[1], dict):
                no = _to_float(tokens[1].get("price"))
            if yes is not None:
                return yes, no
        
        last_trade = _to_float(data.get("lastTradePrice"))
        if last_trade is not None:
            return last_trade, None
        
        bid = _to_float(data.get("bestBid"))
        ask = _to_float(data.get("bestAsk"))
        if bid is not None and ask is not None:
            return (bid + ask) / 2.0, None
        
        return None, None
    
    def _parse_kalshi(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Map a Kalshi trade-api v2 market onto MarketRecord fields."""
        ticker = _first(data, "ticker", "id")
        title = _first(data, "title")
        closes_at = payload_close_time(MarketSource.KALSHI, data)
        yes_cents = self._kalshi_yes_cents(data)
        self._require(market_id=ticker, title=title, closes_at=closes_at, yes_price=yes_cents)
        
        yes_price = _cents(yes_cents)
        explicit_no = _to_float(data.get("no_price"))
        no_price = _cents(explicit_no) if explicit_no is not None and explicit_no > 0 else 100 - yes_price
        
        open_interest = _to_float(data.get("open_interest"))
        liquidity_score = (
            min(1.0, max(0.0, open_interest) / self.config.kalshi_open_interest_scale)
            if open_interest is not None else self.config.default_liquidity_score
        )
        # Kalshi reports liquidity in cents
        liquidity_cents = _to_float(data.get("liquidity"))
        
        previous = _to_float(data.get("previous_price"))
        last = _to_float(data.get("last_price"))
        price_change = _finite(last - previous) if last is not None and previous is not None and previous > 0 else None
        
        return {
            "id": str(ticker),
            "title": str(title).strip(),
            "category": _first(data, "category") or None,
            "url": self.config.kalshi_market_url.format(ticker=ticker),
            "closes_at": closes_at,
            "yes_price": yes_price,
            "no_price": no_price,
            "liquidity_score": liquidity_score,
            "liquidity": max(0.0, liquidity_cents) / 100.0 if liquidity_cents is not None else None,
            "volume_24h": self._volume(data.get("volume_24h")),
            "volume_total": self._volume(data.get("volume")),
            "price_change_24h": price_change,
            "last_trade_time": parse_timestamp(_first(data, "last_update_time", "updated_time")),
        }
    
    def _kalshi_yes_cents(self, data: Dict[str, Any]) -> Optional[float]:
        for key in ("last_price", "yes_price"):
            value = _to_float(data.get(key))
            if value is not None and value > 0:
                return value
        
        dollars = _to_float(data.get("last_price_dollars"))
        if dollars is not None and dollars > 0:
            return _finite(dollars * 100)
        
        bid = _to_float(data.get("yes_bid"))
        ask = _to_float(data.get("yes_ask"))
        if bid is not None and ask is not None and ask > 0:
            return _finite((bid + ask) / 2.0)
        return None
    
    def _volume(self, value: Any) -> float:
        volume = _to_float(value)
        if volume is None or volume < 0:
            return self.config.default_volume_24h
        return volume
    
    @staticmethod
    def _require(**fields: Any) -> None:
        for name, value in fields.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationFailure(name, "missing required field")
    
    def get_normalization_statistics(self) -> Dict[str, Any]:
        """Get normalization statistics."""
        total = self.normalization_stats["total_processed"]
        success_rate = (
            self.normalization_stats["successful_normalizations"] / total
            if total > 0 else 0
        )
        return {**self.normalization_stats, "success_rate": success_rate}
    
    def reset_statistics(self) -> None:
        """Reset normalization statistics."""
        self.normalization_stats = {
            "total_processed": 0,
            "successful_normalizations": 0,
            "failed_normalizations": 0,
        }
