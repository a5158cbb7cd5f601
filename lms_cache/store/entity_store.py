from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
import asyncio
import logging
import time

from pydantic import BaseModel, ValidationError

from lms_cache.core.constants import FetchStatus, StoreEvent
from lms_cache.core.exceptions import CACHE_HIT, StoreError
from lms_cache.services.backend import DataBackend
from lms_cache.services.connectivity import Connectivity
from lms_cache.services.fetcher import EntityFetcher, FetchedRows, Payload, to_row
from lms_cache.store import policy
from lms_cache.store.definitions import StoreDefinition
from lms_cache.store.entry import CacheEntry
from lms_cache.store.indices import (
    build_indices,
    entity_id,
    index_insert,
    index_remove,
    index_replace,
    key_of,
)
from lms_cache.utils.events import EventBus

logger = logging.getLogger(__name__)

EntityType = TypeVar("EntityType", bound=BaseModel)


@dataclass
class FetchResult(Generic[EntityType]):
    status: FetchStatus
    items: List[EntityType]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (FetchStatus.FETCHED, FetchStatus.CACHE_HIT)


def dump_entity(entity: BaseModel) -> Dict[str, Any]:
    computed = set(type(entity).model_computed_fields)
    return entity.model_dump(mode="json", by_alias=True, exclude=computed)


class EntityStore(Generic[EntityType]):
    """Cache for one entity type.

    Reads go through ``fetch``/``fetch_partition``, which consult the fetch
    guard before touching the network. Writes patch the collection and its
    indices in place. Every state change goes through the transition
    handlers below; nothing else mutates ``entry``.
    """

    def __init__(self, definition: StoreDefinition, fetcher: EntityFetcher[EntityType],
                 events: Optional[EventBus] = None, clock: Callable[[], float] = time.time):
        self.definition = definition
        self.name = definition.name
        self.fetcher = fetcher
        self.events = events
        self.clock = clock
        self.entry: CacheEntry[EntityType] = CacheEntry(cache_expiry=definition.cache_expiry)

    @property
    def collection(self) -> List[EntityType]:
        return self.entry.collection

    @property
    def scoped(self) -> bool:
        return self.definition.scope_field is not None

    def get(self, ident: Any) -> Optional[EntityType]:
        return self.entry.by_id.get(str(ident))

    def by(self, field: str, value: Any) -> List[EntityType]:
        return list(self.entry.by_key.get(field, {}).get(str(value), []))

    def scoped_collection(self) -> List[EntityType]:
        if not self.scoped or self.entry.scope_key is None:
            return list(self.entry.collection)
        return self.by(self.definition.scope_field, self.entry.scope_key)

    def partition(self, field: str, value: Any) -> List[EntityType]:
        value = str(value)
        if self._merges_partition(field):
            return self.by(field, value)
        return list(self.entry.partition_rows.get(field, {}).get(value, []))

    def _merges_partition(self, field: str) -> bool:
        # Partitions of a scoped store on any other field would leak into its scope
        return not self.scoped or field == self.definition.scope_field

    def _view(self) -> List[EntityType]:
        return self.scoped_collection() if self.scoped else self.entry.collection

    def is_fresh(self, scope: Any = None) -> bool:
        scope = None if scope is None else str(scope)
        if self.definition.retain_scopes and scope is not None:
            return policy.is_partition_fresh(self.entry, self.definition.scope_field, scope,
                                             self.clock(), scoped=True)
        return policy.is_fresh(self.entry, scope, self.clock())

    def on_dispatch(self) -> int:
        self.entry.request_token += 1
        self.entry.loading = True
        self.entry.error = None
        return self.entry.request_token

    def _is_latest(self, token: int) -> bool:
        if token != self.entry.request_token:
            logger.info(f"Discarding superseded {self.name} response (token {token}, latest {self.entry.request_token})")
            return False
        return True

    def on_success(self, token: int, result: Any, scope: Optional[str] = None) -> bool:
        if not self._is_latest(token):
            return False
        self.entry.loading = False
        if result is CACHE_HIT:
            return True

        self.entry.collection = list(result.items)
        self.entry.by_id, self.entry.by_key = build_indices(self.entry.collection, self.definition.index_fields)
        self.entry.quarantined = list(result.quarantined)
        self.entry.loaded = True
        self.entry.last_fetched_at = self.clock()
        self.entry.scope_key = scope
        self.entry.partitions = {}
        self.entry.partition_rows = {}
        return True

    def on_partition_success(self, token: int, field: str, value: str, result: Any) -> bool:
        if not self._is_latest(token):
            return False
        self.entry.loading = False
        if result is CACHE_HIT:
            return True

        if self._merges_partition(field):
            kept = [item for item in self.entry.collection if key_of(item, field) != value]
            self.entry.collection = kept + list(result.items)
            self.entry.by_id, self.entry.by_key = build_indices(self.entry.collection, self.definition.index_fields)
            self.entry.quarantined = list(result.quarantined)
        else:
            self.entry.partition_rows.setdefault(field, {})[value] = list(result.items)
        self.entry.partitions.setdefault(field, {})[value] = self.clock()
        return True

    def on_failure(self, token: int, reason: str) -> bool:
        if not self._is_latest(token):
            return False
        self.entry.loading = False
        self.entry.error = reason
        return True

    def on_abandon(self, token: int) -> None:
        """Releases the in-flight flag of a fetch that was cancelled."""
        if token == self.entry.request_token:
            self.entry.loading = False

    def _fail_unexpected(self, token: int, error: Exception) -> None:
        logger.exception(f"Unexpected error while fetching {self.name}")
        self.on_failure(token, str(error) or type(error).__name__)

    def _resolve_scope(self, scope: Any) -> Optional[str]:
        if not self.scoped:
            if scope is not None:
                raise ValueError(f"{self.name} store is not scoped")
            return None
        if scope is None:
            raise ValueError(f"{self.name} fetch requires a {self.definition.scope_field}")
        return str(scope)

    async def _publish(self, kind: StoreEvent, **data):
        if self.events is not None:
            await self.events.publish(f"{self.name}/{kind.value}", {"store": self.name, **data})

    async def fetch(self, scope: Any = None, force: bool = False) -> FetchResult[EntityType]:
        scope = self._resolve_scope(scope)
        if self.definition.retain_scopes:
            return await self._fetch_scope_bucket(scope, force)

        decision = policy.evaluate(self.entry, scope, self.clock(), force=force)
        if decision is policy.FetchDecision.SKIP_IN_FLIGHT:
            logger.debug(f"{self.name} fetch already in flight, skipping")
            return FetchResult(FetchStatus.IN_FLIGHT, self._view())
        if decision is policy.FetchDecision.SKIP_FRESH:
            logger.debug(f"Cache HIT for {self.name} (scope={scope})")
            return FetchResult(FetchStatus.CACHE_HIT, self._view())

        token = self.on_dispatch()
        filters = {self.definition.scope_field: scope} if self.scoped else None
        cache_check = None if force else (lambda: policy.is_fresh(self.entry, scope, self.clock()))
        try:
            result = await self.fetcher.fetch_collection(filters=filters, cache_check=cache_check)
        except StoreError as e:
            if not self.on_failure(token, e.reason):
                return FetchResult(FetchStatus.DISCARDED, self._view())
            logger.warning(f"{self.name} fetch failed: {e.reason}")
            await self._publish(StoreEvent.FAILED, error=e.reason)
            return FetchResult(FetchStatus.FAILED, self._view(), error=e.reason)
        except Exception as e:
            self._fail_unexpected(token, e)
            raise
        except asyncio.CancelledError:
            self.on_abandon(token)
            raise

        if not self.on_success(token, result, scope):
            return FetchResult(FetchStatus.DISCARDED, self._view())
        if result is CACHE_HIT:
            return FetchResult(FetchStatus.CACHE_HIT, self._view())

        logger.info(f"Fetched {len(self.entry.collection)} {self.name} (scope={scope})")
        await self._publish(StoreEvent.FETCHED, scope=scope, count=len(self.entry.collection))
        return FetchResult(FetchStatus.FETCHED, self._view())

    async def _fetch_scope_bucket(self, scope: str, force: bool) -> FetchResult[EntityType]:
        """Each scope is a partition on the scope field, so earlier scopes stay cached."""
        field = self.definition.scope_field
        result = await self.fetch_partition(field, scope, force=force)
        stamp = self.entry.partitions.get(field, {}).get(scope)
        if result.ok and stamp is not None:
            self.entry.scope_key = scope
            self.entry.loaded = True
            self.entry.last_fetched_at = stamp
        return result

    async def fetch_partition(self, field: str, value: Any, force: bool = False) -> FetchResult[EntityType]:
        """Loads the rows belonging to one parent, e.g. live sessions of a course.

        Unscoped stores merge them into the collection. A scoped store keeps
        them in ``entry.partition_rows`` so its own scope stays untouched.
        """
        value = str(value)
        decision = policy.evaluate_partition(self.entry, field, value, self.clock(), scoped=self.scoped, force=force)
        if decision is policy.FetchDecision.SKIP_IN_FLIGHT:
            return FetchResult(FetchStatus.IN_FLIGHT, self.partition(field, value))
        if decision is policy.FetchDecision.SKIP_FRESH:
            logger.debug(f"Cache HIT for {self.name} {field}={value}")
            return FetchResult(FetchStatus.CACHE_HIT, self.partition(field, value))

        token = self.on_dispatch()
        cache_check = None if force else (
            lambda: policy.is_partition_fresh(self.entry, field, value, self.clock(), self.scoped)
        )
        try:
            result = await self.fetcher.fetch_collection(
                filters={field: value},
                columns=self.definition.partition_columns.get(field),
                cache_check=cache_check,
            )
        except StoreError as e:
            if not self.on_failure(token, e.reason):
                return FetchResult(FetchStatus.DISCARDED, self.partition(field, value))
            logger.warning(f"{self.name} fetch for {field}={value} failed: {e.reason}")
            await self._publish(StoreEvent.FAILED, error=e.reason)
            return FetchResult(FetchStatus.FAILED, self.partition(field, value), error=e.reason)
        except Exception as e:
            self._fail_unexpected(token, e)
            raise
        except asyncio.CancelledError:
            self.on_abandon(token)
            raise

        if not self.on_partition_success(token, field, value, result):
            return FetchResult(FetchStatus.DISCARDED, self.partition(field, value))
        if result is CACHE_HIT:
            return FetchResult(FetchStatus.CACHE_HIT, self.partition(field, value))

        await self._publish(StoreEvent.FETCHED, partition={field: value}, count=len(result.items))
        return FetchResult(FetchStatus.FETCHED, self.partition(field, value))

    async def fetch_current(self, **filters) -> Optional[EntityType]:
        """Loads a single entity (or none) into ``entry.current``."""
        epoch = self._begin_request()
        try:
            entity = await self.fetcher.fetch_one(filters)
        except StoreError as e:
            self._fail_request(epoch, e)
            raise
        if self._is_stale(epoch, "fetch_current"):
            return entity

        self.entry.current = entity
        if entity is not None and entity_id(entity) in self.entry.by_id:
            self._replace(entity)
        return entity

    def _begin_request(self) -> int:
        self.entry.error = None
        return self.entry.epoch

    def _fail_request(self, epoch: int, error: StoreError) -> None:
        if epoch == self.entry.epoch:
            self.entry.error = error.reason
        logger.warning(f"{self.name} request failed: {error.reason}")

    def _is_stale(self, epoch: int, operation: str) -> bool:
        if epoch != self.entry.epoch:
            logger.info(f"Dropping {self.name} {operation} result that resolved after a reset")
            return True
        return False

    def _insert(self, entity: EntityType) -> None:
        if entity_id(entity) in self.entry.by_id:
            self._replace(entity)
            return
        prepend = self.definition.prepend_on_create
        if prepend:
            self.entry.collection.insert(0, entity)
        else:
            self.entry.collection.append(entity)
        index_insert(self.entry.by_id, self.entry.by_key, entity, self.definition.index_fields, prepend=prepend)

    def _replace(self, entity: EntityType) -> Optional[EntityType]:
        ident = entity_id(entity)
        if self.entry.current is not None and entity_id(self.entry.current) == ident:
            self.entry.current = entity
        previous = self.entry.by_id.get(ident)
        if previous is None:
            return None
        position = next(i for i, item in enumerate(self.entry.collection) if entity_id(item) == ident)
        self.entry.collection[position] = entity
        index_replace(self.entry.by_id, self.entry.by_key, previous, entity,
                      self.definition.index_fields, self.entry.collection)
        return previous

    def _remove(self, ident: str) -> Optional[EntityType]:
        previous = self.entry.by_id.get(ident)
        if self.entry.current is not None and entity_id(self.entry.current) == ident:
            self.entry.current = None
        if previous is None:
            return None
        self.entry.collection = [item for item in self.entry.collection if entity_id(item) != ident]
        index_remove(self.entry.by_id, self.entry.by_key, previous, self.definition.index_fields)
        return previous

    def _merged(self, ident: str, patch: Payload) -> Optional[EntityType]:
        current = self.entry.by_id.get(ident)
        if current is None:
            return None
        try:
            return type(current).model_validate({**dump_entity(current), **to_row(patch)})
        except ValidationError as e:
            logger.warning(f"Skipping optimistic {self.name} update for {ident}: {e.error_count()} validation error(s)")
            return None

    async def create(self, payload: Payload) -> EntityType:
        epoch = self._begin_request()
        try:
            entity = await self.fetcher.create(payload)
        except StoreError as e:
            self._fail_request(epoch, e)
            raise
        if self._is_stale(epoch, "create"):
            return entity

        self._insert(entity)
        await self._publish(StoreEvent.CREATED, id=entity_id(entity))
        return entity

    async def update(self, ident: Any, patch: Payload, optimistic: Optional[bool] = None) -> EntityType:
        """Updates one entity remotely and patches it in place.

        Optimistic updates are applied locally before the request and
        reverted to the previous value if the backend rejects them.
        """
        ident = str(ident)
        if optimistic is None:
            optimistic = self.definition.optimistic
        epoch = self._begin_request()

        previous = None
        if optimistic:
            merged = self._merged(ident, patch)
            if merged is not None:
                previous = self.apply_optimistic(merged)

        try:
            updated = await self.fetcher.update({"id": ident}, patch)
        except StoreError as e:
            self._revert_optimistic(epoch, ident, previous, e.reason)
            self._fail_request(epoch, e)
            raise
        except BaseException:
            self._revert_optimistic(epoch, ident, previous, "request did not complete")
            raise
        if self._is_stale(epoch, "update"):
            return updated

        self._replace(updated)
        await self._publish(StoreEvent.UPDATED, id=ident)
        return updated

    async def update_where(self, filters: Dict[str, Any], patch: Payload) -> EntityType:
        """Updates the single row matching ``filters`` and upserts it locally."""
        epoch = self._begin_request()
        try:
            updated = await self.fetcher.update(filters, patch)
        except StoreError as e:
            self._fail_request(epoch, e)
            raise
        if self._is_stale(epoch, "update"):
            return updated

        self._insert(updated)
        await self._publish(StoreEvent.UPDATED, id=entity_id(updated))
        return updated

    async def delete(self, ident: Any) -> str:
        ident = str(ident)
        epoch = self._begin_request()
        try:
            await self.fetcher.delete({"id": ident})
        except StoreError as e:
            self._fail_request(epoch, e)
            raise
        if self._is_stale(epoch, "delete"):
            return ident

        self._remove(ident)
        await self._publish(StoreEvent.DELETED, id=ident)
        return ident

    def apply_optimistic(self, entity: EntityType) -> Optional[EntityType]:
        """Replaces a cached entity without a round trip; returns the old value."""
        previous = self._replace(entity)
        if previous is None:
            logger.debug(f"Optimistic {self.name} update for unknown id {entity_id(entity)} ignored")
        return previous

    def revert(self, ident: Any, previous: Optional[EntityType]) -> None:
        if previous is None or str(ident) not in self.entry.by_id:
            return
        self._replace(previous)

    def _revert_optimistic(self, epoch: int, ident: str, previous: Optional[EntityType], reason: str) -> None:
        if previous is not None and epoch == self.entry.epoch:
            logger.info(f"Reverting optimistic {self.name} update for {ident}: {reason}")
            self.revert(ident, previous)

    def set_current(self, entity: Optional[EntityType]) -> None:
        self.entry.current = entity

    def clear_current(self) -> None:
        self.entry.current = None

    def clear_error(self) -> None:
        self.entry.error = None

    def invalidate(self, scope: Any = None) -> None:
        if self.definition.retain_scopes and scope is not None:
            self.invalidate_partition(self.definition.scope_field, scope)
            if str(scope) == self.entry.scope_key:
                self.entry.loaded = False
            logger.info(f"Invalidated {self.name} cache (scope={scope})")
            return
        if scope is not None and str(scope) != self.entry.scope_key:
            return
        self.entry.loaded = False
        self.entry.partitions = {}
        logger.info(f"Invalidated {self.name} cache (scope={self.entry.scope_key})")

    def invalidate_partition(self, field: str, value: Any) -> None:
        self.entry.partitions.get(field, {}).pop(str(value), None)
        self.entry.partition_rows.get(field, {}).pop(str(value), None)

    def reset(self) -> None:
        self.entry.clear()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "collection": [dump_entity(item) for item in self._view()],
            "loaded": self.entry.loaded,
            "last_fetched_at": self.entry.last_fetched_at,
            "scope_key": self.entry.scope_key,
        }

    def restore(self, data: Dict[str, Any]) -> bool:
        fetched_at = data.get("last_fetched_at")
        if self.entry.loading or not policy.within_expiry(fetched_at, self.entry.cache_expiry, self.clock()):
            return False

        rows: FetchedRows[EntityType] = self.fetcher.validate_rows(data.get("collection") or [])
        self.entry.collection = rows.items
        self.entry.by_id, self.entry.by_key = build_indices(self.entry.collection, self.definition.index_fields)
        self.entry.quarantined = rows.quarantined
        self.entry.loaded = bool(data.get("loaded", True))
        self.entry.last_fetched_at = fetched_at
        self.entry.scope_key = data.get("scope_key")
        if self.definition.retain_scopes and self.entry.scope_key is not None:
            self.entry.partitions = {self.definition.scope_field: {self.entry.scope_key: fetched_at}}
        logger.info(f"Restored {len(rows.items)} {self.name} from snapshot")
        return True

    def stats(self) -> Dict[str, Any]:
        entry = self.entry
        return {
            "name": self.name,
            "size": len(entry.collection),
            "loading": entry.loading,
            "loaded": entry.loaded,
            "error": entry.error,
            "scope_key": entry.scope_key,
            "last_fetched_at": entry.last_fetched_at,
            "cache_expiry": entry.cache_expiry,
            "fresh": self.is_fresh(entry.scope_key),
            "indices": {field: len(index) for field, index in entry.by_key.items()},
            "partitions": {field: sorted(stamps) for field, stamps in entry.partitions.items()},
            "partition_rows": {
                field: {value: len(rows) for value, rows in buckets.items()}
                for field, buckets in entry.partition_rows.items()
            },
            "quarantined": len(entry.quarantined),
            "current_id": entity_id(entry.current) if entry.current is not None else None,
        }


def create_store(definition: StoreDefinition, backend: DataBackend, connectivity: Connectivity,
                 events: Optional[EventBus] = None, clock: Callable[[], float] = time.time) -> EntityStore:
    fetcher = EntityFetcher(
        definition.name,
        definition.table,
        definition.schema,
        backend,
        connectivity,
        columns=definition.columns,
        order=definition.order,
    )
    return EntityStore(definition, fetcher, events=events, clock=clock)
