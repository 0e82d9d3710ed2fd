import logging
import time
from typing import Callable, NamedTuple

from config import CACHE_TTL_SECONDS
from models import NormalizedWeather

logger = logging.getLogger(__name__)


class CacheEntry(NamedTuple):
    value: NormalizedWeather
    timestamp: float


class ResultCache:
    """In-memory TTL cache of normalized weather, keyed by lowercased city.

    Expiry is lazy: a stale entry is only dropped when its key is read.
    There is no size bound. get() and put() never await, so under a single
    event loop the staleness check and the eviction cannot interleave.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def _key(key: str) -> str:
        return key.lower()

    def get(self, key: str) -> NormalizedWeather | None:
        key = self._key(key)
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.timestamp > self.ttl_seconds:
            logger.info("Cache entry expired: key=%r", key)
            del self._entries[key]
            return None

        return entry.value

    def put(self, key: str, value: NormalizedWeather) -> None:
        self._entries[self._key(key)] = CacheEntry(value, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
