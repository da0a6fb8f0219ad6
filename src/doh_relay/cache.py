from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from cachetools import TTLCache
from dnslib import DNSRecord

""" Name-keyed response cache with a sliding write window. """

logger = logging.getLogger("doh_relay.cache")

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAXSIZE = 10000
DEFAULT_CLEANUP_INTERVAL_SECONDS = 600


class NameCache:
    """
    Thread-safe mapping from queried name to the last upstream response.

    Inputs:
        ttl: Seconds an entry stays valid after its most recent write.
        maxsize: Maximum number of names held; least recently used names are
            evicted first when full.
        timer: Clock used for expiry (defaults to time.monotonic).
    Outputs:
        NameCache instance

    Notes:
        Expiry is measured from the last set() for a name, not from its first
        insertion, and get() does not extend it. The TTLs inside the cached
        answer are not consulted.

    Example use:
        >>> from dnslib import DNSRecord
        >>> cache = NameCache(ttl=60)
        >>> cache.set("example.com.", DNSRecord.question("example.com"))
        >>> cache.get("example.com.") is not None
        True
        >>> cache.get("missing.example.") is None
        True
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        maxsize: int = DEFAULT_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.maxsize = maxsize
        self._store: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.RLock()

    def get(self, name: str) -> Optional[DNSRecord]:
        """
        Retrieves the cached response for a name.

        Inputs:
            name: Queried name as received (e.g. "example.com.").

        Outputs:
            The cached DNSRecord, or None when absent or expired.
        """
        with self._lock:
            return self._store.get(name)

    def set(self, name: str, message: DNSRecord) -> None:
        """
        Stores a response and restarts the expiry window for the name.

        Inputs:
            name: Queried name as received.
            message: Upstream response to remember.
        Outputs:
            None
        """
        with self._lock:
            self._store[name] = message

    def purge_expired(self) -> int:
        """Remove all expired entries.

        Inputs:
            None
        Outputs:
            Number of entries removed.
        """
        with self._lock:
            return len(self._store.expire())

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._store


class CacheJanitor(threading.Thread):
    """
    Background daemon thread that periodically purges expired cache entries.

    Inputs (constructor):
        cache: NameCache to purge
        interval_seconds: Seconds between purges

    Outputs:
        CacheJanitor thread instance (call start() to begin)

    Example:
        >>> janitor = CacheJanitor(NameCache(), interval_seconds=600)
        >>> janitor.start()
        >>> janitor.stop()
    """

    def __init__(self, cache: NameCache, interval_seconds: float) -> None:
        super().__init__(daemon=True, name="CacheJanitor")
        self.cache = cache
        self.interval_seconds = max(0.01, float(interval_seconds))
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            removed = self.cache.purge_expired()
            if removed:
                logger.debug("Purged %d expired cache entries", removed)

    def stop(self, timeout: float = 5.0) -> None:
        """
        Signal the janitor to stop and wait for the thread to exit.

        Inputs:
            timeout: Maximum seconds to wait for thread join (default 5.0)

        Outputs:
            None
        """
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)
