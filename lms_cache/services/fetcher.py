from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar, Union
import logging

from pydantic import BaseModel, ValidationError

from lms_cache.core.exceptions import CACHE_HIT, InvalidRowError, OfflineError, _CacheHit
from lms_cache.services.backend import DataBackend, Filters, Ordering
from lms_cache.services.connectivity import Connectivity

logger = logging.getLogger(__name__)

EntityType = TypeVar("EntityType", bound=BaseModel)
Payload = Union[BaseModel, Dict[str, Any]]


@dataclass
class QuarantinedRow:
    row: Dict[str, Any]
    reason: str


@dataclass
class FetchedRows(Generic[EntityType]):
    items: List[EntityType] = field(default_factory=list)
    quarantined: List[QuarantinedRow] = field(default_factory=list)


def to_row(payload: Payload) -> Dict[str, Any]:
    if isinstance(payload, BaseModel):
        if hasattr(payload, "to_row"):
            return payload.to_row()
        return payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return dict(payload)


class EntityFetcher(Generic[EntityType]):
    """Remote operations for one entity type.

    Each call checks connectivity first and performs a single backend
    request; there is no retry.
    """

    def __init__(self, name: str, table: str, schema: Type[EntityType], backend: DataBackend,
                 connectivity: Connectivity, columns: str = "*", order: Optional[Ordering] = None):
        self.name = name
        self.table = table
        self.schema = schema
        self.backend = backend
        self.connectivity = connectivity
        self.columns = columns
        self.order = order

    def _ensure_online(self):
        if not self.connectivity.is_online():
            logger.warning(f"Skipping {self.name} request: offline")
            raise OfflineError()

    def validate_rows(self, rows: List[dict]) -> FetchedRows[EntityType]:
        result: FetchedRows[EntityType] = FetchedRows()
        for row in rows:
            try:
                result.items.append(self.schema.model_validate(row))
            except ValidationError as e:
                reason = f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}"
                result.quarantined.append(QuarantinedRow(row=row, reason=reason))
        if result.quarantined:
            logger.warning(f"Quarantined {len(result.quarantined)} invalid {self.name} row(s)")
        return result

    def validate_row(self, row: Optional[dict]) -> EntityType:
        if row is None:
            raise InvalidRowError(f"{self.name}: backend returned no row")
        try:
            return self.schema.model_validate(row)
        except ValidationError as e:
            raise InvalidRowError(f"{self.name}: {e.errors()[0]['msg']}")

    async def fetch_collection(self, filters: Optional[Filters] = None, columns: Optional[str] = None,
                               cache_check: Optional[Callable[[], bool]] = None
                               ) -> Union[FetchedRows[EntityType], _CacheHit]:
        self._ensure_online()
        if cache_check is not None and cache_check():
            logger.debug(f"Cache HIT for {self.name} filters={filters}")
            return CACHE_HIT

        logger.debug(f"Cache MISS for {self.name} filters={filters}")
        rows = await self.backend.select(self.table, columns or self.columns, filters=filters, order=self.order)
        return self.validate_rows(rows)

    async def fetch_one(self, filters: Filters) -> Optional[EntityType]:
        self._ensure_online()
        row = await self.backend.select_one(self.table, self.columns, filters=filters)
        if row is None:
            return None
        return self.validate_row(row)

    async def create(self, payload: Payload) -> EntityType:
        self._ensure_online()
        row = await self.backend.insert(self.table, to_row(payload))
        return self.validate_row(row)

    async def update(self, filters: Filters, patch: Payload) -> EntityType:
        self._ensure_online()
        row = await self.backend.update(self.table, filters, to_row(patch), columns=self.columns)
        return self.validate_row(row)

    async def delete(self, filters: Filters) -> None:
        self._ensure_online()
        await self.backend.delete(self.table, filters)
