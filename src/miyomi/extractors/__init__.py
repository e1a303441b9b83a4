"""Market data sources."""

from typing import List, Optional

import httpx

from miyomi.core.config import Settings, settings as default_settings
from miyomi.extractors.base import BaseExtractor, ExtractorConfig, fetch_all_sources, fetch_source
from miyomi.extractors.fixture import FixtureExtractor, load_fixture_payloads
from miyomi.extractors.kalshi import KalshiExtractor
from miyomi.extractors.polymarket import PolymarketExtractor
from miyomi.models.market import MarketSource


def build_sources(
    config: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None
) -> List[BaseExtractor]:
    """Build the configured market sources, in source-priority order."""
    config = config or default_settings
    extractor_config = ExtractorConfig(
        timeout=config.request_timeout,
        max_retries=config.max_retries,
        max_records=config.max_markets_per_source,
        page_size=min(100, config.max_markets_per_source),
    )
    
    if config.market_data_mode == "fixture":
        return [
            FixtureExtractor(MarketSource.POLYMARKET, config=extractor_config),
            FixtureExtractor(MarketSource.KALSHI, config=extractor_config),
        ]
    
    return [
        PolymarketExtractor(
            config=extractor_config,
            client=client,
            base_url=config.polymarket_base_url
        ),
        KalshiExtractor(
            config=extractor_config,
            client=client,
            base_url=config.kalshi_base_url,
            api_key=config.kalshi_api_key
        ),
    ]


__all__ = [
    "BaseExtractor",
    "ExtractorConfig",
    "FixtureExtractor",
    "KalshiExtractor",
    "PolymarketExtractor",
    "build_sources",
    "fetch_all_sources",
    "fetch_source",
    "load_fixture_payloads",
]
