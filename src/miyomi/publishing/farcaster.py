"""
Farcaster Publisher - Posts pick content as casts through Neynar v2

When no Neynar API key or signer is configured the publisher runs dry: the
cast text is logged and a result with ``dry_run=True`` is returned. Real
publish failures raise ``DownstreamFailureError``; they are never masked as a
successful cast.
"""

from typing import Any, Dict, Optional
from datetime import datetime, timezone

import httpx

from miyomi.core.config import settings
from miyomi.core.exceptions import DownstreamFailureError
from miyomi.core.logging import LoggerMixin
from miyomi.models.base import BaseModel


class PublishResult(BaseModel):
    """Outcome of one publish call."""
    text: str
    dry_run: bool
    cast_hash: Optional[str] = None
    farcaster_url: Optional[str] = None
    shortlink_url: Optional[str] = None
    published_at: datetime


class FarcasterPublisher(LoggerMixin):
    """Publishes casts with a Neynar managed signer."""
    
    def __init__(
        self,
        api_key: Optional[str] = None,
        signer_uuid: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_post_length: int = 320,
    ):
        self.api_key = api_key or settings.neynar_api_key
        self.signer_uuid = signer_uuid or settings.farcaster_signer_uuid
        self.base_url = (base_url or settings.neynar_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self.max_post_length = max_post_length
        self._session = client
        self._owns_session = client is None
    
    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.signer_uuid)
    
    @property
    def session(self) -> httpx.AsyncClient:
        if self._session is None:
            self._session = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
            self._owns_session = True
        return self._session
    
    async def __aenter__(self):
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
    
    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.aclose()
            self._session = None
    
    def add_shortlink(self, post: str, shortlink_url: Optional[str]) -> str:
        """Append the shortlink when the result still fits the cast limit."""
        if not shortlink_url:
            return post
        with_link = f"{post}\n\n📊 {shortlink_url}"
        if len(with_link) <= self.max_post_length:
            return with_link
        return post
    
    async def publish(
        self,
        post: str,
        shortlink_url: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PublishResult:
        """Publish a cast; dry-run when Neynar is not configured."""
        now = now or datetime.now(timezone.utc)
        text = self.add_shortlink(post, shortlink_url)
        if len(text) > self.max_post_length:
            raise DownstreamFailureError("publish", f"cast is {len(text)} chars, limit {self.max_post_length}")
        
        if not self.configured:
            self.logger.info("Farcaster not configured, dry run", text=text)
            return PublishResult(text=text, dry_run=True, shortlink_url=shortlink_url, published_at=now)
        
        try:
            response = await self.session.post(
                f"{self.base_url}/farcaster/cast",
                headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                json={"signer_uuid": self.signer_uuid, "text": text},
            )
            response.raise_for_status()
            cast = response.json()["cast"]
            cast_hash = cast["hash"]
        except httpx.HTTPStatusError as e:
            self.logger.error("Farcaster publish rejected", status_code=e.response.status_code)
            raise DownstreamFailureError("publish", f"HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            self.logger.error("Farcaster publish request failed", error=str(e))
            raise DownstreamFailureError("publish", str(e) or type(e).__name__) from e
        except (KeyError, TypeError, ValueError) as e:
            self.logger.error("Unexpected Neynar response", error=str(e))
            raise DownstreamFailureError("publish", f"unexpected response: {e}") from e
        
        result = PublishResult(
            text=text,
            dry_run=False,
            cast_hash=cast_hash,
            farcaster_url=self._cast_url(cast),
            shortlink_url=shortlink_url,
            published_at=now,
        )
        self.logger.info("Cast published", cast_hash=cast_hash, url=result.farcaster_url)
        return result
    
    @staticmethod
    def _cast_url(cast: Dict[str, Any]) -> Optional[str]:
        username = (cast.get("author") or {}).get("username")
        if not username:
            return None
        return f"https://warpcast.com/{username}/{cast['hash']}"
