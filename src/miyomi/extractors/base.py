"""Base extractor class for market data sources."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime, timezone

import httpx
from pydantic import BaseModel

from miyomi.core.config import settings
from miyomi.core.exceptions import SourceUnavailableError
from miyomi.core.logging import LoggerMixin, get_logger
from miyomi.models.market import MarketRecord, MarketSource, SOURCE_PRIORITY
from miyomi.transformers.market_normalizer import MarketNormalizer

logger = get_logger(__name__)


class ExtractorConfig(BaseModel):
    """Configuration for data extractors."""
    
    timeout: float = 8.0
    max_retries: int = 1
    backoff_factor: float = 0.5
    max_records: int = 100
    page_size: int = 100
    user_agent: str = "Miyomi/0.1"
    
    @classmethod
    def from_settings(cls) -> "ExtractorConfig":
        return cls(
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            max_records=settings.max_markets_per_source,
            page_size=min(100, settings.max_markets_per_source),
        )


class BaseExtractor(LoggerMixin, ABC):
    """Base class for market data sources.
    
    Subclasses return raw provider payloads from ``fetch_raw``; this class
    filters out closed markets and runs the rest through the normalizer.
    """
    
    def __init__(
        self,
        config: Optional[ExtractorConfig] = None,
        normalizer: Optional[MarketNormalizer] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ExtractorConfig.from_settings()
        self.normalizer = normalizer or MarketNormalizer()
        self._session: Optional[httpx.AsyncClient] = client
        self._owns_session = client is None
    
    @property
    def session(self) -> httpx.AsyncClient:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                headers={
                    "User-Agent": self.config.user_agent,
                    **self.get_auth_headers()
                },
            )
            self._owns_session = True
        return self._session
    
    async def __aenter__(self):
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
    
    async def close(self) -> None:
        """Close HTTP session if this extractor created it."""
        if self._session is not None and self._owns_session:
            await self._session.aclose()
            self._session = None
    
    @property
    def name(self) -> str:
        return self.get_source().value
    
    @abstractmethod
    def get_source(self) -> MarketSource:
        """Get the provider this extractor handles."""
    
    def get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for API requests."""
        return {"Accept": "application/json"}
    
    def get_base_url(self) -> str:
        """Get base URL for API requests."""
        raise NotImplementedError
    
    @abstractmethod
    async def fetch_raw(self) -> List[Dict[str, Any]]:
        """Fetch raw market payloads, at most ``config.max_records``."""
    
    @abstractmethod
    def is_open(self, payload: Dict[str, Any], now: datetime) -> bool:
        """Whether a raw payload describes an active, unresolved market."""
    
    async def fetch_markets(self) -> List[MarketRecord]:
        """Fetch, filter and normalize markets from this source."""
        raw_markets = await self.fetch_raw()
        now = datetime.now(timezone.utc)
        open_markets = [m for m in raw_markets if isinstance(m, dict) and self.is_open(m, now)]
        records = self.normalizer.normalize_batch(self.get_source(), open_markets)
        
        self.logger.info(
            "Fetched markets",
            source=self.name,
            raw_count=len(raw_markets),
            open_count=len(open_markets),
            normalized_count=len(records)
        )
        return records
    
    @abstractmethod
    async def fetch_raw_market(self, market_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one raw payload by id regardless of status; None if the provider has no such market."""
    
    async def fetch_market(self, market_id: str) -> Optional[MarketRecord]:
        """
        Look up a single market, open or not.
    
        Used to re-price a pick, so resolved and closed markets are kept.
        """
        payload = await self.fetch_raw_market(market_id)
        if payload is None:
            self.logger.info("Market not found", source=self.name, market_id=market_id)
            return None
        return self.normalizer.normalize(self.get_source(), payload)
    
    async def _get_or_none(self, url: str) -> Any:
        """GET that maps a 404 to None."""
        try:
            return await self.make_request("GET", url)
        except SourceUnavailableError as e:
            if e.status_code == 404:
                return None
            raise
    
    async def make_request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Make an HTTP request with bounded retry on 5xx/transport errors."""
        full_url = f"{self.get_base_url().rstrip('/')}/{url.lstrip('/')}"
        
        for attempt in range(self.config.max_retries + 1):
            try:
                self.logger.debug("Making API request", method=method, url=full_url, attempt=attempt + 1)
                response = await self.session.request(method, full_url, **kwargs)
                response.raise_for_status()
                return response.json()
            
            except httpx.HTTPStatusError as e:
                self.logger.warning(
                    "HTTP error in API request",
                    status_code=e.response.status_code,
                    url=full_url,
                    attempt=attempt + 1
                )
                # Don't retry on client errors (4xx)
                if 400 <= e.response.status_code < 500 or attempt == self.config.max_retries:
                    raise SourceUnavailableError(
                        self.name, f"HTTP {e.response.status_code}", status_code=e.response.status_code
                    ) from e
            
            except httpx.TransportError as e:
                self.logger.warning("Request failed", error=str(e), url=full_url, attempt=attempt + 1)
                if attempt == self.config.max_retries:
                    raise SourceUnavailableError(self.name, str(e) or type(e).__name__) from e
            
            except ValueError as e:
                raise SourceUnavailableError(self.name, f"invalid JSON: {e}") from e
            
            await asyncio.sleep(self.config.backoff_factor * (2 ** attempt))
        
        raise SourceUnavailableError(self.name, "retries exhausted")


async def fetch_source(source: BaseExtractor, timeout: float) -> List[MarketRecord]:
    """Fetch one source; any failure or timeout becomes an empty list."""
    try:
        return await asyncio.wait_for(source.fetch_markets(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Market source timed out", source=source.name, timeout_seconds=timeout)
    except Exception as e:
        source.log_error(e, {"source": source.name})
    return []


async def fetch_all_sources(
    sources: Sequence[BaseExtractor],
    timeout: Optional[float] = None
) -> List[List[MarketRecord]]:
    """Fan out to every source concurrently; results come back in source-priority order."""
    timeout = timeout if timeout is not None else settings.source_timeout_seconds
    ordered = sorted(sources, key=lambda s: SOURCE_PRIORITY.get(s.name, len(SOURCE_PRIORITY) + 1))
    results = await asyncio.gather(*(fetch_source(source, timeout) for source in ordered))
    return list(results)