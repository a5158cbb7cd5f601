"""Derived lookup maps over a store's collection.

``build_indices`` rebuilds everything after a full fetch. The ``index_*``
helpers patch the maps for a single created, updated or deleted entity so
small mutations stay proportional to the affected bucket.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from lms_cache.store.entry import Index


def entity_id(entity: Any) -> str:
    return str(entity.id)


def key_of(entity: Any, field: str) -> Optional[str]:
    value = getattr(entity, field, None)
    if value is None:
        return None
    return str(getattr(value, "value", value))


def build_indices(collection: Sequence[Any], key_fields: Sequence[str]) -> Tuple[Dict[str, Any], Dict[str, Index]]:
    by_id: Dict[str, Any] = {}
    by_key: Dict[str, Index] = {field: {} for field in key_fields}
    for entity in collection:
        by_id[entity_id(entity)] = entity
        for field in key_fields:
            key = key_of(entity, field)
            if key is not None:
                by_key[field].setdefault(key, []).append(entity)
    return by_id, by_key


def index_insert(by_id: Dict[str, Any], by_key: Dict[str, Index], entity: Any,
                 key_fields: Sequence[str], prepend: bool = False) -> None:
    by_id[entity_id(entity)] = entity
    for field in key_fields:
        key = key_of(entity, field)
        if key is None:
            continue
        bucket = by_key.setdefault(field, {}).setdefault(key, [])
        if prepend:
            bucket.insert(0, entity)
        else:
            bucket.append(entity)


def _drop_from_bucket(index: Index, key: str, entity_key: str) -> None:
    bucket = index.get(key)
    if bucket is None:
        return
    remaining = [item for item in bucket if entity_id(item) != entity_key]
    if remaining:
        index[key] = remaining
    else:
        del index[key]


def index_replace(by_id: Dict[str, Any], by_key: Dict[str, Index], previous: Any, entity: Any,
                  key_fields: Sequence[str], collection: List[Any]) -> None:
    """Swaps ``previous`` for ``entity`` in every index.

    When a foreign key changed, the destination bucket is rebuilt from
    ``collection`` so its order keeps matching the collection.
    """
    ident = entity_id(entity)
    by_id[ident] = entity
    for field in key_fields:
        index = by_key.setdefault(field, {})
        old_key, new_key = key_of(previous, field), key_of(entity, field)
        if old_key == new_key:
            if new_key is None:
                continue
            index[new_key] = [entity if entity_id(item) == ident else item for item in index.get(new_key, [])]
            continue
        if old_key is not None:
            _drop_from_bucket(index, old_key, ident)
        if new_key is not None:
            index[new_key] = [item for item in collection if key_of(item, field) == new_key]


def index_remove(by_id: Dict[str, Any], by_key: Dict[str, Index], entity: Any, key_fields: Sequence[str]) -> None:
    ident = entity_id(entity)
    by_id.pop(ident, None)
    for field in key_fields:
        key = key_of(entity, field)
        if key is not None:
            _drop_from_bucket(by_key.setdefault(field, {}), key, ident)
