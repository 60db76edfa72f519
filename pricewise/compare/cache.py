"""In-memory cache for comparison results.

Entries are keyed by an md5 of the inventory item id and the canonical
(sorted-key) JSON of the comparison config. The serialized config is stored
with each entry and compared on lookup, so a hash collision can never return
results computed for a different config.

Entries are deep copies taken on store and again on every hit, so callers
never share mutable state with the cache.
"""

import asyncio
import copy
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from pricewise.compare.types import ComparisonConfig, ItemComparisonResults
from pricewise.config import settings
from pricewise.metrics import record_cache_lookup, update_cache_size

logger = logging.getLogger(__name__)


def serialize_config(config: ComparisonConfig) -> str:
    """Canonical JSON for a config: semantically identical configs serialize identically."""
    return json.dumps(config.to_dict(), sort_keys=True, separators=(",", ":"), default=str)


@dataclass
class _CacheEntry:
    inventory_item_id: str
    serialized_config: str
    results: ItemComparisonResults
    stored_at: float


class ComparisonCache:
    """Bounded LRU cache with per-entry TTL, safe for concurrent coroutines."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_size: Optional[int] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.comparison_cache_ttl_seconds
        self.max_size = max_size if max_size is not None else settings.comparison_cache_max_size
        self.enabled = enabled if enabled is not None else settings.comparison_cache_enabled
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    @staticmethod
    def make_key(inventory_item_id: str, serialized_config: str) -> str:
        digest = hashlib.md5(f"{inventory_item_id}\x00{serialized_config}".encode()).hexdigest()
        return f"comparison:{digest}"

    def __len__(self) -> int:
        return len(self._entries)

    async def get(
        self,
        inventory_item_id: str,
        config: ComparisonConfig,
    ) -> Optional[ItemComparisonResults]:
        """Return cached results for (item, config), or None on a miss or expiry."""
        if not self.enabled:
            return None

        serialized = serialize_config(config)
        key = self.make_key(inventory_item_id, serialized)

        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                record_cache_lookup(hit=False)
                return None

            if entry.inventory_item_id != inventory_item_id or entry.serialized_config != serialized:
                logger.warning(f"Comparison cache key collision for item {inventory_item_id}")
                record_cache_lookup(hit=False)
                return None

            if self._clock() - entry.stored_at >= self.ttl_seconds:
                del self._entries[key]
                update_cache_size(len(self._entries))
                record_cache_lookup(hit=False)
                return None

            self._entries.move_to_end(key)
            record_cache_lookup(hit=True)
            return copy.deepcopy(entry.results)

    async def set(
        self,
        inventory_item_id: str,
        config: ComparisonConfig,
        results: ItemComparisonResults,
    ) -> None:
        if not self.enabled:
            return

        serialized = serialize_config(config)
        key = self.make_key(inventory_item_id, serialized)

        async with self._lock:
            self._entries[key] = _CacheEntry(
                inventory_item_id, serialized, copy.deepcopy(results), self._clock()
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
            update_cache_size(len(self._entries))

    async def invalidate(self, inventory_item_id: Optional[str] = None) -> int:
        """Drop entries for one item (or all entries); returns the number removed."""
        async with self._lock:
            if inventory_item_id is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                keys = [k for k, e in self._entries.items() if e.inventory_item_id == inventory_item_id]
                for key in keys:
                    del self._entries[key]
                removed = len(keys)
            update_cache_size(len(self._entries))
        return removed
