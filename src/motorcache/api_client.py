"""Client for the content platform API with cached endpoints."""

import asyncio
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Union

from typing_extensions import TypedDict

from motorcache.cache.manager import CacheStats
from motorcache.fetch import CachingFetcher

logger = logging.getLogger(__name__)

Identifier = Union[str, int]


class BatchRequest(TypedDict, total=False):
    """One call for ApiClient.batch_load."""

    key: str  # name of the result in the returned mapping
    method: str  # ApiClient method name, e.g. 'news'
    args: List[Any]


class BatchResult(TypedDict):
    data: Any
    error: Optional[str]


def normalize_query(query: str) -> str:
    """Turn a free-text search query into a cache key fragment.

    Examples:
        >>> normalize_query('BMW M3 Review')
        'bmw_m3_review'
    """
    return re.sub(r"[^a-z0-9]", "_", query.lower())


class ApiClient:
    """Reviews, news and search endpoints of the content API.

    Every cached endpoint has a fixed cache key derived from its arguments,
    exposed through ``cache_key`` so ``refresh`` can drop exactly the entry a
    call would read.
    """

    # method name -> key template; arguments fill the template in order
    CACHE_KEYS = {
        "reviews_summary": "reviews_summary_{}",
        "category_reviews": "reviews_{}",
        "review": "review_{}",
        "all_reviews": "reviews_all",
        "news": "news_{}",
        "news_summary": "news_summary_{}",
        "news_article": "news_article_{}",
        "images": "images",
    }
    # endpoints whose argument is a limit; no limit (None or 0) means "all"
    LIMITED = {"reviews_summary", "news", "news_summary"}

    def __init__(self, fetcher: CachingFetcher, base_url: Optional[str] = None):
        """Initialize the client.

        Args:
            fetcher: Caching fetcher used for every cached endpoint
            base_url: API root; defaults to the cache config's api_base_url
        """
        self.fetcher = fetcher
        self.base_url = (base_url or fetcher.cache.config.api_base_url).rstrip("/")

    @property
    def cache(self):
        return self.fetcher.cache

    def cache_key(self, method: str, *args: Any) -> str:
        """Return the cache key ``method`` uses for ``args``.

        Raises:
            ValueError: If the method is not a cached endpoint
        """
        if method == "search":
            query = args[0]
            search_type = args[1] if len(args) > 1 else "all"
            return f"search_{search_type}_{normalize_query(query)}"
        try:
            template = self.CACHE_KEYS[method]
        except KeyError:
            raise ValueError(f"{method} is not a cached endpoint") from None
        if "{}" not in template:
            return template
        value = args[0] if args else None
        if value is None or (method in self.LIMITED and not value):
            value = "all"
        return template.format(value)

    def _url(self, path: str, **params: Any) -> str:
        query = "&".join(f"{k}={v}" for k, v in params.items() if v)
        url = f"{self.base_url}{path}"
        return f"{url}?{query}" if query else url

    # =========================================================================
    # Reviews
    # =========================================================================

    async def reviews_summary(self, limit: Optional[int] = None) -> Any:
        """Latest review summaries, optionally limited."""
        return await self.fetcher.fetch(
            self._url("/reviews/summary", limit=limit),
            self.cache_key("reviews_summary", limit),
        )

    async def category_reviews(self, category: str) -> Any:
        """Reviews in a category such as 'luxury' or 'performance'."""
        return await self.fetcher.fetch(
            self._url(f"/reviews/{category}"),
            self.cache_key("category_reviews", category),
        )

    async def review(self, review_id: Identifier) -> Any:
        return await self.fetcher.fetch(
            self._url(f"/reviews/{review_id}"),
            self.cache_key("review", review_id),
        )

    async def all_reviews(self) -> Any:
        return await self.fetcher.fetch(
            self._url("/reviews"), self.cache_key("all_reviews")
        )

    # =========================================================================
    # News and media
    # =========================================================================

    async def news(self, limit: Optional[int] = None) -> Any:
        return await self.fetcher.fetch(
            self._url("/news", limit=limit), self.cache_key("news", limit)
        )

    async def news_summary(self, limit: Optional[int] = None) -> Any:
        return await self.fetcher.fetch(
            self._url("/news/summary", limit=limit),
            self.cache_key("news_summary", limit),
        )

    async def news_article(self, news_id: Identifier) -> Any:
        return await self.fetcher.fetch(
            self._url(f"/news/{news_id}"), self.cache_key("news_article", news_id)
        )

    async def images(self) -> Any:
        return await self.fetcher.fetch(self._url("/images"), self.cache_key("images"))

    async def youtube_videos(self, category: Optional[str] = None) -> Any:
        """Video listings; always fetched fresh and never cached."""
        url = self._url("/youtube", category=category)
        logger.debug(f"Fetching YouTube videos from server: {url}")
        return await self.fetcher.request(url)

    async def search(self, query: str, search_type: str = "all") -> Any:
        """Search reviews and news.

        Args:
            query: Free-text query
            search_type: 'reviews', 'news' or 'all'
        """
        return await self.fetcher.fetch(
            f"{self.base_url}/search",
            self.cache_key("search", query, search_type),
            {"params": {"q": query, "type": search_type}},
        )

    async def api_call(
        self,
        endpoint: str,
        cache_key: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Cached call to an arbitrary endpoint.

        Args:
            endpoint: Path below the base URL, or an absolute http(s) URL
            cache_key: Key to cache the response under
            options: Request options passed to the fetcher
        """
        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        return await self.fetcher.fetch(url, cache_key, options)

    # =========================================================================
    # Cache control
    # =========================================================================

    def clear_cache(self, cache_key: str) -> None:
        self.cache.remove(cache_key)
        logger.info(f"Cleared API cache: {cache_key}")

    def clear_all_cache(self) -> int:
        return self.cache.clear_all()

    async def refresh(self, method: str, *args: Any) -> Any:
        """Drop the cached response of ``method(*args)`` and fetch it again."""
        self.clear_cache(self.cache_key(method, *args))
        return await getattr(self, method)(*args)

    async def batch_load(self, requests: List[BatchRequest]) -> Dict[str, BatchResult]:
        """Run several endpoint calls concurrently.

        A failing call does not abort the others; its error message is
        reported under its key instead.

        Returns:
            Mapping of request key to ``{'data': ..., 'error': ...}``
        """

        async def run(request: BatchRequest) -> BatchResult:
            try:
                method = getattr(self, request["method"])
                data = await method(*request.get("args", []))
            except Exception as e:
                logger.warning(f"Batch request {request['key']} failed: {e}")
                return {"data": None, "error": str(e)}
            return {"data": data, "error": None}

        results = await asyncio.gather(*(run(r) for r in requests))
        return {r["key"]: result for r, result in zip(requests, results)}

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def is_cached(self, cache_key: str) -> bool:
        """True if a fresh entry exists for ``cache_key``."""
        return self.cache.lookup(cache_key).hit

    def cache_age(self, cache_key: str) -> Optional[float]:
        """Seconds since ``cache_key`` was stored, or None if not stored."""
        entry = self.cache.peek(cache_key)
        if entry is None:
            return None
        return self.cache.now() - entry.stored_at

    async def preload_common_data(self) -> bool:
        """Warm the cache with the landing page's data.

        Returns:
            True if every request succeeded; failures are logged, not raised
        """
        logger.info("Preloading common data")
        results = await asyncio.gather(
            self.reviews_summary(5),
            self.news(5),
            self.category_reviews("luxury"),
            self.category_reviews("performance"),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, Exception)]
        for failure in failures:
            logger.warning(f"Preload failed: {failure}")
        if not failures:
            logger.info("Common data preloaded")
        return not failures
