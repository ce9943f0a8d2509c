from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

UNSPLASH_API_URL = "https://api.unsplash.com"


@dataclass(frozen=True)
class PhotoResult:
    url: str
    alt: str
    attribution: str
    tracking_ref: Optional[str] = None
    attribution_url: Optional[str] = None
    photographer_name: Optional[str] = None
    photographer_url: Optional[str] = None


class PhotoSearchProvider(Protocol):
    async def search(self, query: str, orientation: str = "landscape") -> Optional[PhotoResult]: ...

    async def track_download(self, tracking_ref: str) -> None: ...


class UnsplashClient:
    """Single-result photo search against the Unsplash API."""

    def __init__(
        self,
        access_key: str | None = None,
        *,
        base_url: str = UNSPLASH_API_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_key = access_key if access_key is not None else os.getenv("UNSPLASH_ACCESS_KEY", "")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Client-ID {self.access_key}", "Accept-Version": "v1"},
        )

    async def search(self, query: str, orientation: str = "landscape") -> Optional[PhotoResult]:
        if not self.access_key:
            logger.error("Unsplash API key not configured")
            return None
        params = {"query": query.strip(), "page": "1", "per_page": "1", "orientation": orientation}
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}/search/photos", params=params)
        except httpx.HTTPError as exc:
            logger.warning("Unsplash request failed for %r: %s", query, exc)
            return None

        if resp.status_code == 429:
            logger.warning("Unsplash rate limit exceeded, resets at %s", resp.headers.get("X-RateLimit-Reset", "unknown"))
            return None
        if resp.status_code >= 300:
            logger.warning("Unsplash API error %s for %r", resp.status_code, query)
            return None

        results = (resp.json() or {}).get("results") or []
        if not results:
            logger.warning("No Unsplash results for query: %r", query)
            return None

        photo = results[0]
        user = photo.get("user") or {}
        links = photo.get("links") or {}
        name = str(user.get("name") or "Unknown")
        return PhotoResult(
            url=str((photo.get("urls") or {}).get("regular") or ""),
            alt=str(photo.get("alt_description") or photo.get("description") or query),
            attribution=f"Photo by {name} on Unsplash",
            tracking_ref=links.get("download_location"),
            attribution_url=links.get("html"),
            photographer_name=name,
            photographer_url=(user.get("links") or {}).get("html"),
        )

    async def track_download(self, tracking_ref: str) -> None:
        async with self._client() as client:
            resp = await client.get(tracking_ref)
        resp.raise_for_status()


def get_photo_provider() -> PhotoSearchProvider:
    return UnsplashClient()
