"""Unit tests for cross-source aggregation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from miyomi.engines.aggregation import aggregate, by_category, deduplicate, importance, title_key, trending


@pytest.mark.unit
def test_title_key_normalizes_case_punctuation_and_spaces() -> None:
    assert title_key("Will BTC hit 100k?") == title_key("will  btc hit 100k??")
    assert title_key("  Fed:  cut, or hold? ") == "fed cut or hold"


@pytest.mark.unit
def test_duplicate_titles_across_sources_are_merged(make_market) -> None:
    """The first occurrence (higher priority source) wins."""
    poly = make_market(source="polymarket", id="p1", title="Will BTC hit 100k?")
    kalshi = make_market(source="kalshi", id="k1", title="will btc hit 100k??")
    
    merged = aggregate([[poly], [kalshi]])
    
    assert len(merged) == 1
    assert merged[0].id == "p1"


@pytest.mark.unit
def test_deduplicate_preserves_order(make_market) -> None:
    a = make_market(title="A?")
    b = make_market(title="B?")
    a_again = make_market(title="a")
    
    assert [m.id for m in deduplicate([a, b, a_again])] == [a.id, b.id]


@pytest.mark.unit
def test_importance_formula(make_market) -> None:
    poly = make_market(source="polymarket", volume_24h=100, volume_total=1000)
    kalshi = make_market(source="kalshi", volume_24h=100, volume_total=1000)
    
    assert importance(poly) == pytest.approx(2 * 100 + 1000 + 1000)
    assert importance(kalshi) == pytest.approx(2 * 100 + 1000 + 500)


@pytest.mark.unit
def test_aggregate_sorts_by_importance_and_truncates(make_market) -> None:
    small = make_market(source="polymarket", volume_24h=10)
    big = make_market(source="kalshi", volume_24h=50_000)
    medium = make_market(source="kalshi", volume_24h=5_000)
    
    ranked = aggregate([[small], [big, medium]], limit=2)
    
    assert [m.id for m in ranked] == [big.id, medium.id]


@pytest.mark.unit
def test_aggregate_of_nothing_is_empty() -> None:
    assert aggregate([[], []]) == []


@pytest.mark.unit
def test_trending_prefers_momentum_and_controversy(make_market, now) -> None:
    quiet = make_market(yes_price=95, volume_24h=10, volume_total=100_000)
    hot = make_market(
        yes_price=50,
        volume_24h=40_000,
        volume_total=100_000,
        last_trade_time=now - timedelta(hours=1),
    )
    
    assert [m.id for m in trending([quiet, hot], limit=1, now=now)] == [hot.id]


@pytest.mark.unit
def test_by_category_is_case_insensitive(make_market) -> None:
    crypto = make_market(category="Crypto")
    politics = make_market(category="US Politics")
    untagged = make_market()
    
    assert by_category([crypto, politics, untagged], "politics") == [politics]
