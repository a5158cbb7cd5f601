from enum import Enum


DEFAULT_ROLE = "learner"

class RoleEnum(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    LEARNER = "learner"

class LiveSessionStatusEnum(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    CANCELLED = "cancelled"

class FetchStatus(str, Enum):
    FETCHED = "fetched"
    CACHE_HIT = "cache_hit"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"
    DISCARDED = "discarded"

class StoreEvent(str, Enum):
    FETCHED = "fetched"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    FAILED = "failed"
    RESET = "reset"
