"""motorcache: Persistent read-through caching for the content platform API."""

__version__ = "0.1.0"

from motorcache.api_client import ApiClient
from motorcache.cache import CacheConfig, PersistentCache
from motorcache.fetch import CachingFetcher

__all__ = ["ApiClient", "CacheConfig", "CachingFetcher", "PersistentCache", "__version__"]
