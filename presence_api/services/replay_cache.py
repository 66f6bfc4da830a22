import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta

log = logging.getLogger(__name__)


class ReplayCache:
    """
    Bounded set of recently seen nonces.

    Entries leave oldest-first, either because they are older than `window`
    (a payload that old is already rejected as stale) or because the cache
    holds more than `capacity` entries.

    Per-process only: two verifier processes do not see each other's nonces.

    Capacity eviction can drop a nonce that is still inside the window, and
    that payload could then be admitted again. Size `capacity` above the
    number of payloads one process sees per window; such evictions are logged.
    """

    def __init__(self, capacity: int = 1024, window: timedelta = timedelta(seconds=15)):
        if capacity < 1:
            raise ValueError("replay cache capacity must be positive")
        self.capacity = capacity
        self.window = window
        self._seen: "OrderedDict[str, datetime]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._seen)

    def __contains__(self, key):
        return key in self._seen

    def admit(self, key: str, now: datetime) -> bool:
        """Record `key`. False if it was already seen (a replay)."""
        with self._lock:
            self._expire(now)
            if key in self._seen:
                return False
            self._seen[key] = now
            while len(self._seen) > self.capacity:
                evicted, _ = self._seen.popitem(last=False)
                log.warning("replay cache full (%d): evicted unexpired nonce %s", self.capacity, evicted)
            return True

    def _expire(self, now: datetime):
        cutoff = now - self.window
        while self._seen:
            oldest_key, seen_at = next(iter(self._seen.items()))
            if seen_at >= cutoff:
                break
            del self._seen[oldest_key]

    def clear(self):
        with self._lock:
            self._seen.clear()
