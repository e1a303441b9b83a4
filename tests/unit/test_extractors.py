"""Unit tests for market data sources (Polymarket, Kalshi, fixtures)."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import httpx
import pytest

from miyomi.core.config import Settings
from miyomi.core.exceptions import SourceUnavailableError
from miyomi.extractors import (
    ExtractorConfig,
    FixtureExtractor,
    KalshiExtractor,
    PolymarketExtractor,
    build_sources,
    fetch_all_sources,
    fetch_source,
)
from miyomi.models.market import MarketSource


def _future(hours: int = 48) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def _polymarket_market(market_id: str, **overrides) -> dict:
    market = {
        "id": market_id,
        "question": f"Will {market_id} happen?",
        "endDate": _future(),
        "active": True,
        "closed": False,
        "outcomePrices": "[\"0.3\", \"0.7\"]",
        "volume24hr": 1000,
    }
    market.update(overrides)
    return market


def _kalshi_market(ticker: str, **overrides) -> dict:
    market = {
        "ticker": ticker,
        "title": f"Will {ticker} happen?",
        "close_time": _future(),
        "status": "active",
        "last_price": 40,
    }
    market.update(overrides)
    return market


def _config(**overrides) -> ExtractorConfig:
    values = {"timeout": 1.0, "max_retries": 1, "backoff_factor": 0.0, "max_records": 100, "page_size": 2}
    values.update(overrides)
    return ExtractorConfig(**values)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class _SlowSource(FixtureExtractor):
    async def fetch_raw(self) -> List[dict]:
        await asyncio.sleep(5)
        return []


class _BrokenSource(FixtureExtractor):
    async def fetch_raw(self) -> List[dict]:
        raise SourceUnavailableError(self.name, "boom")


# ---------------------------------------------------------------------------
# Polymarket
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_polymarket_paginates_and_filters_closed() -> None:
    """Offset pagination stops on a short page; closed markets are dropped."""
    pages = {
        "0": [_polymarket_market("a"), _polymarket_market("b", closed=True)],
        "2": [_polymarket_market("c")],
    }
    seen_offsets = []
    
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets"
        assert request.url.params["active"] == "true"
        offset = request.url.params["offset"]
        seen_offsets.append(offset)
        return httpx.Response(200, json=pages.get(offset, []))
    
    async with _client(handler) as client:
        extractor = PolymarketExtractor(config=_config(), client=client, base_url="https://gamma.test")
        records = await extractor.fetch_markets()
    
    assert seen_offsets == ["0", "2"]
    assert [r.id for r in records] == ["a", "c"]
    assert all(r.source == "polymarket" for r in records)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_polymarket_respects_safety_cap() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        return httpx.Response(200, json=[_polymarket_market(f"m{offset + i}") for i in range(2)])
    
    async with _client(handler) as client:
        extractor = PolymarketExtractor(config=_config(max_records=5), client=client, base_url="https://gamma.test")
        raw = await extractor.fetch_raw()
    
    assert len(raw) == 5


@pytest.mark.unit
def test_polymarket_open_market_check() -> None:
    now = datetime.now(timezone.utc)
    extractor = PolymarketExtractor(config=_config())
    
    assert extractor.is_open(_polymarket_market("open"), now)
    assert not extractor.is_open(_polymarket_market("archived", archived=True), now)
    assert not extractor.is_open(_polymarket_market("paused", acceptingOrders=False), now)
    assert not extractor.is_open(_polymarket_market("past", endDate=_future(-1)), now)


@pytest.mark.unit
def test_open_market_check_reads_every_close_time_field() -> None:
    now = datetime.now(timezone.utc)
    polymarket = PolymarketExtractor(config=_config())
    kalshi = KalshiExtractor(config=_config())
    
    ended = _polymarket_market("ended", endDateIso=_future(-1))
    del ended["endDate"]
    expired = _kalshi_market("EXPIRED", expiration_time=_future(-1))
    del expired["close_time"]
    
    assert not polymarket.is_open(ended, now)
    assert not kalshi.is_open(expired, now)
    assert polymarket.is_open(_polymarket_market("huge", endDate=1e20), now)


# ---------------------------------------------------------------------------
# Kalshi
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_kalshi_cursor_pagination_and_status_filter() -> None:
    calls = []
    
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(dict(request.url.params))
        assert request.headers["X-API-KEY"] == "secret"
        if "cursor" not in request.url.params:
            return httpx.Response(200, json={
                "markets": [_kalshi_market("K1"), _kalshi_market("K2", status="settled")],
                "cursor": "next-page",
            })
        return httpx.Response(200, json={"markets": [_kalshi_market("K3")], "cursor": ""})
    
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, headers={"X-API-KEY": "secret"}) as client:
        extractor = KalshiExtractor(config=_config(), client=client, base_url="https://kalshi.test", api_key="secret")
        records = await extractor.fetch_markets()
    
    assert len(calls) == 2
    assert calls[0]["status"] == "open"
    assert calls[1]["cursor"] == "next-page"
    assert [r.id for r in records] == ["K1", "K3"]


@pytest.mark.unit
def test_kalshi_auth_header_only_with_key() -> None:
    assert "X-API-KEY" not in KalshiExtractor(config=_config(), api_key="").get_auth_headers()
    assert KalshiExtractor(config=_config(), api_key="k").get_auth_headers()["X-API-KEY"] == "k"


# ---------------------------------------------------------------------------
# Retry and failure handling
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_server_errors_are_retried() -> None:
    attempts = {"count": 0}
    
    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"markets": [_kalshi_market("K1")]})
    
    async with _client(handler) as client:
        extractor = KalshiExtractor(config=_config(), client=client, base_url="https://kalshi.test")
        records = await extractor.fetch_markets()
    
    assert attempts["count"] == 2
    assert [r.id for r in records] == ["K1"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    attempts = {"count": 0}
    
    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(404)
    
    async with _client(handler) as client:
        extractor = KalshiExtractor(config=_config(max_retries=3), client=client, base_url="https://kalshi.test")
        with pytest.raises(SourceUnavailableError):
            await extractor.fetch_raw()
    
    assert attempts["count"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_source_turns_errors_into_empty_list() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")
    
    async with _client(handler) as client:
        extractor = PolymarketExtractor(config=_config(), client=client, base_url="https://gamma.test")
        assert await fetch_source(extractor, timeout=1.0) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_source_abandons_slow_sources() -> None:
    slow = _SlowSource(MarketSource.KALSHI, payloads=[])
    
    assert await fetch_source(slow, timeout=0.05) == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_all_sources_orders_by_priority_and_isolates_failures() -> None:
    kalshi = _BrokenSource(MarketSource.KALSHI, payloads=[])
    polymarket = FixtureExtractor(MarketSource.POLYMARKET)
    
    results = await fetch_all_sources([kalshi, polymarket], timeout=1.0)
    
    assert len(results) == 2
    assert results[0] and all(r.source == "polymarket" for r in results[0])
    assert results[1] == []


# ---------------------------------------------------------------------------
# Fixture sources
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fixture_sources_replay_bundled_payloads() -> None:
    polymarket = await FixtureExtractor(MarketSource.POLYMARKET).fetch_markets()
    kalshi = await FixtureExtractor(MarketSource.KALSHI).fetch_markets()
    
    assert len(polymarket) == 4
    assert len(kalshi) == 4
    assert "fx-poly-resolved" not in {r.id for r in polymarket}
    assert "FX-SETTLED" not in {r.id for r in kalshi}


@pytest.mark.unit
def test_build_sources_by_mode() -> None:
    fixture_sources = build_sources(Settings(market_data_mode="fixture"))
    live_sources = build_sources(Settings(market_data_mode="live"))
    
    assert all(isinstance(s, FixtureExtractor) for s in fixture_sources)
    assert [type(s) for s in live_sources] == [PolymarketExtractor, KalshiExtractor]
    assert [s.name for s in fixture_sources] == ["polymarket", "kalshi"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fixture_fetch_market_ignores_open_filter() -> None:
    source = FixtureExtractor(MarketSource.POLYMARKET)
    
    resolved = await source.fetch_market("fx-poly-resolved")
    missing = await source.fetch_market("no-such-market")
    
    assert resolved is not None
    assert resolved.id == "fx-poly-resolved"
    assert missing is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fixture_fetch_market_by_kalshi_ticker() -> None:
    market = await FixtureExtractor(MarketSource.KALSHI).fetch_market("FX-SETTLED")
    
    assert market is not None
    assert market.source == "kalshi"


# ---------------------------------------------------------------------------
# Single-market lookup
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_polymarket_fetch_market_by_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/closed-1"
        return httpx.Response(200, json=_polymarket_market(
            "closed-1", active=False, closed=True, endDate=_future(-24)
        ))
    
    async with _client(handler) as client:
        extractor = PolymarketExtractor(config=_config(), client=client, base_url="https://gamma.test")
        market = await extractor.fetch_market("closed-1")
    
    assert market.id == "closed-1"
    assert market.yes_price == 30


@pytest.mark.unit
@pytest.mark.asyncio
async def test_kalshi_fetch_market_by_ticker() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/K-DONE"
        return httpx.Response(200, json={"market": _kalshi_market("K-DONE", status="settled", last_price=97)})
    
    async with _client(handler) as client:
        extractor = KalshiExtractor(config=_config(), client=client, base_url="https://kalshi.test")
        market = await extractor.fetch_market("K-DONE")
    
    assert market.id == "K-DONE"
    assert market.yes_price == 97


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_market_maps_404_to_none() -> None:
    async with _client(lambda request: httpx.Response(404)) as client:
        polymarket = PolymarketExtractor(config=_config(), client=client, base_url="https://gamma.test")
        kalshi = KalshiExtractor(config=_config(), client=client, base_url="https://kalshi.test")
        
        assert await polymarket.fetch_market("gone") is None
        assert await kalshi.fetch_market("GONE") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_market_propagates_server_errors() -> None:
    async with _client(lambda request: httpx.Response(500)) as client:
        extractor = KalshiExtractor(config=_config(), client=client, base_url="https://kalshi.test")
        
        with pytest.raises(SourceUnavailableError) as exc_info:
            await extractor.fetch_market("K1")
    
    assert exc_info.value.status_code == 500


# ---------------------------------------------------------------------------
# Malformed payloads
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_malformed_payloads_do_not_sink_the_batch() -> None:
    good = [_polymarket_market("good-1"), _polymarket_market("good-2")]
    bad = [
        _polymarket_market("far-future", endDate=1e20),
        _polymarket_market("nan-close", endDate=float("nan")),
        _polymarket_market("inf-price", outcomePrices=["1e400", "0"]),
        _polymarket_market("huge-price", outcomePrices=["1e307", "0"]),
    ]
    source = FixtureExtractor(MarketSource.POLYMARKET, payloads=good + bad)
    
    records = await fetch_source(source, timeout=1.0)
    
    assert [r.id for r in records] == ["good-1", "good-2"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_malformed_kalshi_payloads_do_not_sink_the_batch() -> None:
    payloads = [
        _kalshi_market("K-GOOD"),
        _kalshi_market("K-HUGE", close_time=None, expiration_time=10 ** 20),
        _kalshi_market("K-INF", last_price=float("inf")),
        _kalshi_market("K-NAN", last_price=None, yes_bid=float("nan"), yes_ask=40),
    ]
    source = FixtureExtractor(MarketSource.KALSHI, payloads=payloads)
    
    records = await fetch_source(source, timeout=1.0)
    
    assert [r.id for r in records] == ["K-GOOD"]
