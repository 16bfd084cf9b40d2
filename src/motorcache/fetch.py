"""Cache-first HTTP fetching of JSON API responses."""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from motorcache.cache.manager import PersistentCache

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "motorcache/0.1.0",
}


class FetchError(Exception):
    """Base exception for failures retrieving a resource from the network."""

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """Raised when the request never produced a response."""

    pass


class HTTPStatusError(FetchError):
    """Raised when the server answers with a status outside 200-299."""

    def __init__(self, url: str, status_code: int, reason: str = ""):
        message = f"HTTP {status_code}"
        if reason:
            message += f": {reason}"
        super().__init__(f"{message} fetching {url}", url)
        self.status_code = status_code
        self.reason = reason


class ResponseDecodeError(FetchError):
    """Raised when a successful response body is not JSON."""

    pass


class CachingFetcher:
    """Read-through cache in front of an HTTP JSON API.

    A fetch consults the cache under the caller's key first and returns a hit
    without touching the network. On a miss it performs one request and
    stores the decoded body under the key. Network and HTTP failures propagate
    and never write to the cache. Concurrent misses for the same key are not
    coalesced; each one requests the resource and the last write wins.

    Examples:
        >>> async with CachingFetcher(cache) as fetcher:
        ...     reviews = await fetcher.fetch(url, 'reviews_all')
    """

    def __init__(
        self,
        cache: PersistentCache,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        """Initialize the fetcher.

        Args:
            cache: Cache the responses are read from and stored into
            client: HTTP client to use; one is created (and owned) if None
            headers: Headers sent with every request
        """
        self.cache = cache
        self.headers: Dict[str, str] = dict(DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(follow_redirects=True)

    @property
    def cache_enabled(self) -> bool:
        return self.cache.config.enabled

    async def fetch(
        self,
        url: str,
        cache_key: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Return the JSON document at ``url``, from the cache when possible.

        Args:
            url: Resource to request on a cache miss
            cache_key: Key the response is cached under
            options: Optional ``method``, ``headers`` and ``params``

        Returns:
            Decoded JSON payload

        Raises:
            HTTPStatusError: If the response status is not 2xx
            NetworkError: If the request fails before a response arrives
            ResponseDecodeError: If the response body is not JSON
        """
        if self.cache_enabled:
            cached = self.cache.lookup(cache_key)
            if cached.hit:
                return cached.value

        logger.debug(f"Fetching from server: {url}")
        payload = await self.request(url, options)

        if self.cache_enabled:
            self.cache.set(cache_key, payload)
        return payload

    async def request(
        self, url: str, options: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """Perform one uncached request and decode the JSON body.

        Raises:
            HTTPStatusError: If the response status is not 2xx
            NetworkError: If the request fails before a response arrives
            ResponseDecodeError: If the response body is not JSON
        """
        options = dict(options or {})
        method = options.pop("method", "GET").upper()
        headers = {**self.headers, **(options.pop("headers", None) or {})}
        params = options.pop("params", None)

        try:
            response = await self.client.request(
                method, url, headers=headers, params=params
            )
        except httpx.RequestError as e:
            logger.error(f"Fetch failed for {url}: {e}")
            raise NetworkError(f"Error fetching {url}: {e}", url) from e

        if not response.is_success:
            logger.error(f"Fetch failed for {url}: HTTP {response.status_code}")
            raise HTTPStatusError(url, response.status_code, response.reason_phrase)

        try:
            return response.json()
        except ValueError as e:
            raise ResponseDecodeError(f"Response from {url} is not JSON: {e}", url) from e

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "CachingFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
