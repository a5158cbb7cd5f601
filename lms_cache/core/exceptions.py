from typing import Optional

from lms_cache.core.cache_config import OFFLINE_MESSAGE


class StoreError(Exception):
    """Base class for failures recorded in a store's ``error`` slot."""

    code = "STORE_ERROR"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class OfflineError(StoreError):
    code = "OFFLINE"

    def __init__(self, reason: str = OFFLINE_MESSAGE):
        super().__init__(reason)


class RemoteFailure(StoreError):
    code = "REMOTE_FAILURE"

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.status_code = status_code


class InvalidRowError(StoreError):
    code = "INVALID_ROW"


class UnknownStoreError(KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown store: {self.name}"


class _CacheHit:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CACHE_HIT"

    def __bool__(self) -> bool:
        return False


# Returned by fetch functions in place of rows when cached data is still fresh
CACHE_HIT = _CacheHit()
