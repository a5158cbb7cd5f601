from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Type

from pydantic import BaseModel

from lms_cache.core.cache_config import (
    CACHE_EXPIRY,
    INDEX_FIELDS,
    OPTIMISTIC_STORES,
    ORDERING,
    PREPEND_ON_CREATE,
    RETAINED_SCOPES,
    SCOPE_FIELDS,
    SELECTS,
    TABLES,
)
from lms_cache.core.config import Settings, settings as default_settings
from lms_cache.schemas.course import Course
from lms_cache.schemas.enrollment import Enrollment
from lms_cache.schemas.live_session import LiveSession
from lms_cache.schemas.note import Note
from lms_cache.schemas.quiz import Quiz
from lms_cache.schemas.user import User
from lms_cache.services.backend import Ordering

SCHEMAS: Dict[str, Type[BaseModel]] = {
    "courses": Course,
    "enrollments": Enrollment,
    "live_sessions": LiveSession,
    "quizzes": Quiz,
    "notes": Note,
    "users": User,
}

# Projection used when a store loads one parent's rows instead of its own scope
PARTITION_SELECTS = {
    "enrollments": {"course_id": SELECTS["enrollments_by_course"]},
}


@dataclass(frozen=True)
class StoreDefinition:
    name: str
    table: str
    schema: Type[BaseModel]
    cache_expiry: float
    columns: str = "*"
    order: Optional[Ordering] = None
    scope_field: Optional[str] = None
    index_fields: Tuple[str, ...] = ()
    partition_columns: Dict[str, str] = field(default_factory=dict)
    optimistic: bool = False
    prepend_on_create: bool = False
    retain_scopes: bool = False


def build_definitions(config: Settings = default_settings) -> Dict[str, StoreDefinition]:
    definitions = {}
    for name, schema in SCHEMAS.items():
        expiry = config.CACHE_EXPIRY_OVERRIDES.get(name, CACHE_EXPIRY[name])
        if not config.CACHE_ENABLED:
            expiry = 0
        definitions[name] = StoreDefinition(
            name=name,
            table=TABLES[name],
            schema=schema,
            cache_expiry=float(expiry),
            columns=SELECTS[name],
            order=ORDERING.get(name),
            scope_field=SCOPE_FIELDS[name],
            index_fields=tuple(INDEX_FIELDS[name]),
            partition_columns=dict(PARTITION_SELECTS.get(name, {})),
            optimistic=name in OPTIMISTIC_STORES,
            prepend_on_create=name in PREPEND_ON_CREATE,
            retain_scopes=name in RETAINED_SCOPES,
        )
    return definitions
