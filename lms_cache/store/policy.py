"""Fetch guard: decides whether a fetch may hit the network.

Rules, first match wins: a fetch already in flight for the store skips;
data loaded for the same scope within the expiry window skips; anything
else proceeds. ``force`` bypasses only the freshness rule.
"""
from enum import Enum
from typing import Optional

from lms_cache.store.entry import CacheEntry


class FetchDecision(str, Enum):
    PROCEED = "proceed"
    SKIP_IN_FLIGHT = "skip_in_flight"
    SKIP_FRESH = "skip_fresh"


def within_expiry(fetched_at: Optional[float], cache_expiry: float, now: float) -> bool:
    return fetched_at is not None and now - fetched_at < cache_expiry


def is_fresh(entry: CacheEntry, scope: Optional[str], now: float) -> bool:
    return (
        entry.loaded
        and entry.scope_key == scope
        and within_expiry(entry.last_fetched_at, entry.cache_expiry, now)
    )


def is_partition_fresh(entry: CacheEntry, field: str, value: str, now: float, scoped: bool) -> bool:
    if within_expiry(entry.partitions.get(field, {}).get(value), entry.cache_expiry, now):
        return True
    # A fresh full fetch of an unscoped store already holds every partition
    return not scoped and is_fresh(entry, None, now)


def evaluate(entry: CacheEntry, scope: Optional[str], now: float, force: bool = False) -> FetchDecision:
    if entry.loading:
        return FetchDecision.SKIP_IN_FLIGHT
    if not force and is_fresh(entry, scope, now):
        return FetchDecision.SKIP_FRESH
    return FetchDecision.PROCEED


def evaluate_partition(entry: CacheEntry, field: str, value: str, now: float,
                       scoped: bool = False, force: bool = False) -> FetchDecision:
    if entry.loading:
        return FetchDecision.SKIP_IN_FLIGHT
    if not force and is_partition_fresh(entry, field, value, now, scoped):
        return FetchDecision.SKIP_FRESH
    return FetchDecision.PROCEED
