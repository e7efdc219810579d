"""
Web search tools backed by a SearXNG instance.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
import httpx
from pydantic import BaseModel, Field

from app.core.config import (
    SEARXNG_URL,
    SEARXNG_TIMEOUT,
    SEARXNG_RETRY_COUNT,
    SEARXNG_RETRY_DELAY,
    SEARXNG_RESULTS_COUNT,
    SEARXNG_DEEP_RESULTS_COUNT,
    SEARXNG_MEDIA_RESULTS_COUNT,
    SEARXNG_DEEP_MEDIA_RESULTS_COUNT,
    SEARXNG_ENGINES,
    SEARXNG_IMAGE_ENGINES,
    SEARXNG_VIDEO_ENGINES,
    SEARXNG_LANGUAGE,
)
from app.llm.tools.base import Tool

logger = logging.getLogger(__name__)

EXCLUDED_IMAGE_DOMAINS = ("artic.edu", "unsplash.com")
VIDEO_DOMAINS = ("youtube.com", "youtu.be")

HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; InfoxAI/1.0)",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


class SearchArgs(BaseModel):
    query: str = Field(..., description="The search query to use")


def _domain(result: Dict[str, Any]) -> str:
    parsed = result.get("parsed_url")
    if isinstance(parsed, list) and len(parsed) > 1 and parsed[1]:
        return parsed[1]
    return urlparse(result.get("url") or "").hostname or ""


def process_text_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "title": r.get("title") or "Untitled",
            "snippet": r.get("content") or "No description available",
            "url": r.get("url"),
            "source": r.get("engine") or "web",
            "type": "text",
            "domain": _domain(r),
            "favicon": r.get("favicon"),
        }
        for r in results
        if r.get("url")
    ]


def process_image_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    processed = []
    for r in results:
        if not r.get("url"):
            continue
        domain = _domain(r).lower()
        if any(excluded in domain for excluded in EXCLUDED_IMAGE_DOMAINS):
            continue
        processed.append({
            "title": r.get("title") or "Untitled Image",
            "snippet": r.get("content") or "No description available",
            "url": r.get("url"),
            "source": r.get("engine") or "image",
            "type": "image",
            "imageUrl": r.get("img_src") or r.get("thumbnail") or r.get("url"),
            "domain": domain,
        })
    return processed


def process_video_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    processed = []
    for r in results:
        if not r.get("url"):
            continue
        domain = _domain(r).lower()
        if not any(allowed in domain for allowed in VIDEO_DOMAINS):
            continue
        processed.append({
            "title": r.get("title") or "Untitled Video",
            "snippet": r.get("content") or "No description available",
            "url": r.get("url"),
            "source": r.get("engine") or "video",
            "type": "video",
            "videoUrl": r.get("url"),
            "thumbnailUrl": r.get("thumbnail") or r.get("img_src") or r.get("url"),
            "duration": r.get("duration") or "Unknown",
            "domain": domain,
        })
    return processed


class SearxngClient:
    """Minimal async SearXNG JSON API client with retries."""

    def __init__(
        self,
        base_url: str = SEARXNG_URL,
        timeout: float = SEARXNG_TIMEOUT,
        retry_count: int = SEARXNG_RETRY_COUNT,
        retry_delay: float = SEARXNG_RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_count = max(1, retry_count)
        self.retry_delay = retry_delay
        self.transport = transport

    async def _request(self, client: httpx.AsyncClient, query: str, category: str, engines: List[str], count: int) -> List[Dict[str, Any]]:
        response = await client.get(
            f"{self.base_url}/search",
            params={
                "format": "json",
                "q": query,
                "engines": ",".join(engines),
                "categories": category,
                "language": SEARXNG_LANGUAGE,
                "pageno": 1,
                "results": count,
            },
            headers=HEADERS,
        )
        response.raise_for_status()
        return response.json().get("results") or []

    async def search(self, query: str, text_count: int, media_count: int) -> List[Dict[str, Any]]:
        """
        Run text, image and video searches in parallel and combine them.

        Raises:
            httpx.HTTPError: after every attempt failed
        """
        last_error: Optional[Exception] = None
        for attempt in range(self.retry_count):
            if attempt > 0:
                await asyncio.sleep(self.retry_delay)
                logger.info(f"Retry attempt {attempt + 1} for SearXNG search")
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    text_raw, image_raw, video_raw = await asyncio.gather(
                        self._request(client, query, "general", SEARXNG_ENGINES, text_count),
                        self._request(client, query, "images", SEARXNG_IMAGE_ENGINES, media_count + 5),
                        self._request(client, query, "videos", SEARXNG_VIDEO_ENGINES, media_count + 5),
                    )
                text = process_text_results(text_raw)[:text_count]
                images = process_image_results(image_raw)[:media_count]
                videos = process_video_results(video_raw)[:media_count]
                logger.info(f"SearXNG returned {len(text)} text, {len(images)} image, {len(videos)} video results")
                return text + images + videos
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"SearXNG search error (attempt {attempt + 1}/{self.retry_count}): {e}")
                last_error = e
        raise last_error


class WebSearchTool(Tool):
    name = "webSearch"
    description = "Search the web for recent information about a specific topic using SearXNG"
    Args = SearchArgs

    text_count = SEARXNG_RESULTS_COUNT
    media_count = SEARXNG_MEDIA_RESULTS_COUNT
    label = "search"

    def __init__(self, client: Optional[SearxngClient] = None):
        self.client = client or SearxngClient()

    async def execute(self, args: SearchArgs) -> Dict[str, Any]:
        timestamp = datetime.now(timezone.utc).isoformat()
        query = args.query.strip()
        if not query:
            return {
                "results": [],
                "query": "",
                "timestamp": timestamp,
                "error": "Search query cannot be empty",
                "message": "Unable to get search results: Search query cannot be empty.",
            }

        try:
            results = await self.client.search(query, self.text_count, self.media_count)
        except Exception as e:
            logger.error(f"Web {self.label} failed: {e}")
            return {
                "results": [],
                "query": query,
                "timestamp": timestamp,
                "error": str(e) or "An error occurred during the search",
                "message": f"Unable to get {self.label} results. Please verify that SearXNG is properly configured and running.",
            }

        return {
            "results": results,
            "query": query,
            "timestamp": timestamp,
            "message": f"Found {len(results)} results for \"{query}\"" if results else f"No results found for \"{query}\"",
        }


class DeepWebSearchTool(WebSearchTool):
    name = "deepWebSearch"
    description = "Perform comprehensive deep web search for extensive research with many results using SearXNG"

    text_count = SEARXNG_DEEP_RESULTS_COUNT
    media_count = SEARXNG_DEEP_MEDIA_RESULTS_COUNT
    label = "deep search"
