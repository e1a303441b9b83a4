"""
Market Aggregator - Merges normalized records from every source

Deduplicates markets listed on more than one provider by a normalized title
key and ranks the survivors by importance. Pure functions over their inputs.
"""

import math
import re
from typing import Dict, Iterable, List, Optional, Sequence
from datetime import datetime, timezone

from miyomi.core.logging import get_logger
from miyomi.models.market import MarketRecord

logger = get_logger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def title_key(title: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    key = _PUNCTUATION.sub("", title.lower())
    return _WHITESPACE.sub(" ", key).strip()


def importance(record: MarketRecord) -> float:
    """2 x 24h volume + lifetime volume + 1000 / source priority rank."""
    return 2 * record.volume_24h + record.volume_total + 1000.0 / max(1, record.source_priority)


def deduplicate(records: Iterable[MarketRecord]) -> List[MarketRecord]:
    """Keep the first record seen for each normalized title."""
    seen = set()
    unique = []
    for record in records:
        key = title_key(record.title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def aggregate(source_lists: Sequence[Sequence[MarketRecord]], limit: Optional[int] = None) -> List[MarketRecord]:
    """Merge per-source lists (given in source-priority order), dedupe, rank and truncate."""
    combined = [record for records in source_lists for record in records]
    unique = deduplicate(combined)
    ranked = sorted(unique, key=importance, reverse=True)
    
    logger.info(
        "Aggregated markets",
        input_count=len(combined),
        unique_count=len(unique),
        limit=limit
    )
    return ranked[:limit] if limit is not None else ranked


def trending_score(record: MarketRecord, now: Optional[datetime] = None) -> float:
    """Volume momentum, size, controversy and recency in one number."""
    now = now or datetime.now(timezone.utc)
    score = 0.0
    
    if record.volume_total > 0:
        score += (record.volume_24h / record.volume_total) * 100
    
    score += math.log(max(record.volume_total, 1.0)) * 10
    
    # Markets near 50/50 are more interesting
    controversy = 1 - abs(record.probability - 0.5) * 2
    score += controversy * 50
    
    if record.last_trade_time is not None:
        hours_since = (now - record.last_trade_time).total_seconds() / 3600.0
        if 0 <= hours_since < 24:
            score += (24 - hours_since) * 2
    
    score += record.source_priority * 10
    return score


def trending(
    records: Sequence[MarketRecord],
    limit: int = 20,
    now: Optional[datetime] = None
) -> List[MarketRecord]:
    """Most-talked-about markets first."""
    scores: Dict[int, float] = {id(r): trending_score(r, now) for r in records}
    return sorted(records, key=lambda r: scores[id(r)], reverse=True)[:limit]


def by_category(records: Iterable[MarketRecord], category: str) -> List[MarketRecord]:
    """Records whose category contains ``category`` (case-insensitive)."""
    needle = category.lower()
    return [r for r in records if r.category and needle in r.category.lower()]
