"""
In-process TTL memo for immutable chain data.

Confirmed transactions, block fee recipients and token metadata never
change once final, so the data-source adapters memoise them per process
to stay inside explorer rate limits.  Nothing here is persisted; a
restart starts cold.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional


class TTLCache:
    """Bounded ``key -> value`` memo with per-entry expiry.

    When full, expired entries go first, then the entry written longest
    ago.  ``None`` is indistinguishable from a miss, so it is never worth
    storing.
    """

    def __init__(self, default_ttl: int = 3600, max_entries: int = 10_000) -> None:
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._default_ttl = default_ttl
        self._max_entries = max_entries

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        deadline, value = entry
        if time.monotonic() > deadline:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        lifetime = self._default_ttl if ttl is None else ttl
        self._entries[key] = (time.monotonic() + lifetime, value)
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_entries and not self.purge_expired():
            self._entries.popitem(last=False)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        *,
        ttl: Optional[int] = None,
        should_cache: Callable[[Any], bool] = lambda v: v is not None,
    ) -> Any:
        """Cached value for *key*, else the awaited *loader* result.

        A result failing *should_cache* (by default a ``None`` from a
        failed lookup) is returned but not kept, so the next call retries.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = await loader()
        if should_cache(value):
            self.set(key, value, ttl=ttl)
        return value

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many went."""
        now = time.monotonic()
        stale = [k for k, (deadline, _) in self._entries.items() if now > deadline]
        for key in stale:
            del self._entries[key]
        return len(stale)
