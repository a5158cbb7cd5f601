from dataclasses import dataclass, field
from typing import Dict, Generic, List, Optional, TypeVar

from lms_cache.services.fetcher import QuarantinedRow

T = TypeVar("T")

Index = Dict[str, List[T]]


@dataclass
class CacheEntry(Generic[T]):
    """Cached state of one entity type.

    ``by_id`` and ``by_key`` are derived from ``collection`` and must never
    disagree with it. ``request_token`` identifies the latest fetch and
    ``epoch`` counts resets; responses carrying older values are dropped.
    """

    cache_expiry: float
    collection: List[T] = field(default_factory=list)
    by_id: Dict[str, T] = field(default_factory=dict)
    by_key: Dict[str, Index] = field(default_factory=dict)
    loading: bool = False
    error: Optional[str] = None
    loaded: bool = False
    last_fetched_at: Optional[float] = None
    scope_key: Optional[str] = None
    current: Optional[T] = None
    # field -> parent key -> fetched at
    partitions: Dict[str, Dict[str, float]] = field(default_factory=dict)
    # Rows of a scoped store loaded for another parent, kept out of ``collection``
    partition_rows: Dict[str, Dict[str, List[T]]] = field(default_factory=dict)
    quarantined: List[QuarantinedRow] = field(default_factory=list)
    request_token: int = 0
    epoch: int = 0

    def clear(self) -> None:
        self.collection = []
        self.by_id = {}
        self.by_key = {}
        self.loading = False
        self.error = None
        self.loaded = False
        self.last_fetched_at = None
        self.scope_key = None
        self.current = None
        self.partitions = {}
        self.partition_rows = {}
        self.quarantined = []
        self.request_token += 1
        self.epoch += 1
