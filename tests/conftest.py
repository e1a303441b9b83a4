"""Shared pytest fixtures for Miyomi tests."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
import structlog

from miyomi.models.market import MarketRecord, Opportunity, Position
from miyomi.storage.state_store import MemoryStateStore

# Resolve sys.stdout on every log call; CliRunner and output capture swap it
structlog.configure(cache_logger_on_first_use=False)

# A Monday, 10:00 in New York
FIXED_NOW = datetime(2025, 6, 2, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test artifacts."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def make_market(now: datetime) -> Callable[..., MarketRecord]:
    """Factory for MarketRecords with neutral defaults."""
    counter = {"n": 0}
    
    def _make(**overrides: Any) -> MarketRecord:
        counter["n"] += 1
        closes_in_hours = overrides.pop("closes_in_hours", 24 * 14)
        yes_price = overrides.pop("yes_price", 50)
        fields = {
            "source": "polymarket",
            "id": f"m-{counter['n']}",
            "title": f"Will test event {counter['n']} happen?",
            "closes_at": now + timedelta(hours=closes_in_hours),
            "yes_price": yes_price,
            "no_price": overrides.pop("no_price", 100 - yes_price),
            "url": f"https://polymarket.com/event/m-{counter['n']}",
        }
        fields.update(overrides)
        return MarketRecord(**fields)
    
    return _make


@pytest.fixture
def make_opportunity(make_market: Callable[..., MarketRecord]) -> Callable[..., Opportunity]:
    """Factory for Opportunities with a given score and position."""
    
    def _make(score: float = 50.0, position: Position = Position.NO, **market_fields: Any) -> Opportunity:
        market = market_fields.pop("market", None) or make_market(**market_fields)
        return Opportunity(
            market=market,
            score=score,
            reasoning=["Market overconfident in YES outcome"],
            time_to_close=72.0,
            recommended_position=position,
        )
    
    return _make
