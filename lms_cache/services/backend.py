import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

import httpx

from lms_cache.core.config import Settings, settings as default_settings
from lms_cache.core.exceptions import RemoteFailure

logger = logging.getLogger(__name__)

Filters = Dict[str, Any]
Ordering = Tuple[str, bool]

SINGLE_ROW_ERROR = "JSON object requested, multiple (or no) rows returned"


class DataBackend(ABC):
    """Remote relational store the entity fetch functions talk to.

    Every failure is raised as ``RemoteFailure`` carrying the backend's own
    message.
    """

    @abstractmethod
    async def select(self, table: str, columns: str = "*", filters: Optional[Filters] = None,
                     order: Optional[Ordering] = None) -> List[dict]:
        pass

    @abstractmethod
    async def select_one(self, table: str, columns: str = "*",
                         filters: Optional[Filters] = None) -> Optional[dict]:
        pass

    @abstractmethod
    async def insert(self, table: str, row: dict, columns: str = "*") -> dict:
        pass

    @abstractmethod
    async def update(self, table: str, filters: Filters, patch: dict, columns: str = "*") -> dict:
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Filters) -> None:
        pass

    @abstractmethod
    async def get_auth_user(self) -> Optional[dict]:
        pass

    async def close(self) -> None:
        pass


def _matches(row: dict, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(str(row.get(column)) == str(value) for column, value in filters.items())


def _sort_key(column: str):
    def key(row: dict):
        value = row.get(column)
        return (value is None, "" if value is None else str(value))
    return key


class MemoryDataBackend(DataBackend):
    """In-process tables. Column projections and joins are not emulated."""

    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None, auth_user: Optional[dict] = None):
        self._tables: Dict[str, List[dict]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self._lock = asyncio.Lock()
        self.auth_user = auth_user

    def seed(self, table: str, rows: List[dict]) -> None:
        self._tables.setdefault(table, []).extend(dict(row) for row in rows)

    def rows(self, table: str) -> List[dict]:
        return [dict(row) for row in self._tables.get(table, [])]

    async def select(self, table: str, columns: str = "*", filters: Optional[Filters] = None,
                     order: Optional[Ordering] = None) -> List[dict]:
        async with self._lock:
            rows = [copy.deepcopy(row) for row in self._tables.get(table, []) if _matches(row, filters)]
        if order:
            column, descending = order
            rows.sort(key=_sort_key(column), reverse=descending)
        return rows

    async def select_one(self, table: str, columns: str = "*",
                         filters: Optional[Filters] = None) -> Optional[dict]:
        rows = await self.select(table, columns, filters)
        if len(rows) > 1:
            raise RemoteFailure(SINGLE_ROW_ERROR, status_code=406)
        return rows[0] if rows else None

    async def insert(self, table: str, row: dict, columns: str = "*") -> dict:
        async with self._lock:
            stored = dict(row)
            stored.setdefault("id", str(uuid.uuid4()))
            stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            if any(str(existing.get("id")) == str(stored["id"]) for existing in self._tables.get(table, [])):
                raise RemoteFailure(f'duplicate key value violates unique constraint "{table}_pkey"', status_code=409)
            self._tables.setdefault(table, []).append(stored)
            return copy.deepcopy(stored)

    async def update(self, table: str, filters: Filters, patch: dict, columns: str = "*") -> dict:
        async with self._lock:
            matches = [row for row in self._tables.get(table, []) if _matches(row, filters)]
            if len(matches) != 1:
                raise RemoteFailure(SINGLE_ROW_ERROR, status_code=406)
            matches[0].update(patch)
            return copy.deepcopy(matches[0])

    async def delete(self, table: str, filters: Filters) -> None:
        async with self._lock:
            self._tables[table] = [row for row in self._tables.get(table, []) if not _matches(row, filters)]

    async def get_auth_user(self) -> Optional[dict]:
        return copy.deepcopy(self.auth_user)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("message") or body.get("msg") or body.get("error_description") or body.get("error") or str(body)
    return str(body)


class SupabaseBackend(DataBackend):
    """PostgREST tables and the auth user endpoint of a hosted backend."""

    OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"

    def __init__(self, base_url: str, api_key: str, access_token: Optional[str] = None,
                 timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
            },
        )

    @staticmethod
    def _params(columns: Optional[str] = None, filters: Optional[Filters] = None,
                order: Optional[Ordering] = None) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if columns:
            params["select"] = columns
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order:
            column, descending = order
            params["order"] = f"{column}.{'desc' if descending else 'asc'}"
        return params

    async def _make_request(self, method: str, path: str, params: Optional[dict] = None,
                            json: Any = None, headers: Optional[dict] = None) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.warning(f"{method} {path} failed with {e.response.status_code}: {message}")
            raise RemoteFailure(message, status_code=e.response.status_code)
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} network error: {e}")
            raise RemoteFailure(f"Network error: {e}")

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned a non-JSON body ({response.status_code})")
            raise RemoteFailure("Invalid JSON in response", status_code=response.status_code)

    async def select(self, table: str, columns: str = "*", filters: Optional[Filters] = None,
                     order: Optional[Ordering] = None) -> List[dict]:
        data = await self._make_request("GET", f"/rest/v1/{table}", params=self._params(columns, filters, order))
        return data or []

    async def select_one(self, table: str, columns: str = "*",
                         filters: Optional[Filters] = None) -> Optional[dict]:
        rows = await self.select(table, columns, filters)
        if len(rows) > 1:
            raise RemoteFailure(SINGLE_ROW_ERROR, status_code=406)
        return rows[0] if rows else None

    async def insert(self, table: str, row: dict, columns: str = "*") -> dict:
        return await self._make_request(
            "POST",
            f"/rest/v1/{table}",
            params=self._params(columns),
            json=[row],
            headers={"Prefer": "return=representation", "Accept": self.OBJECT_MEDIA_TYPE},
        )

    async def update(self, table: str, filters: Filters, patch: dict, columns: str = "*") -> dict:
        return await self._make_request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._params(columns, filters),
            json=patch,
            headers={"Prefer": "return=representation", "Accept": self.OBJECT_MEDIA_TYPE},
        )

    async def delete(self, table: str, filters: Filters) -> None:
        await self._make_request("DELETE", f"/rest/v1/{table}", params=self._params(filters=filters))

    async def get_auth_user(self) -> Optional[dict]:
        if not self.access_token:
            return None
        return await self._make_request("GET", "/auth/v1/user")

    async def close(self) -> None:
        await self._client.aclose()


def create_data_backend(config: Settings = default_settings) -> DataBackend:
    if config.SUPABASE_URL:
        logger.info(f"Using hosted data backend at {config.SUPABASE_URL}")
        return SupabaseBackend(
            config.SUPABASE_URL,
            config.SUPABASE_ANON_KEY,
            access_token=config.SUPABASE_ACCESS_TOKEN,
            timeout=config.REQUEST_TIMEOUT,
        )

    logger.info("Using in-memory data backend")
    return MemoryDataBackend()
