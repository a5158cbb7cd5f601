from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging
import time

from lms_cache.core.cache_config import PERSISTED_STORES
from lms_cache.core.config import Settings, settings as default_settings
from lms_cache.core.constants import StoreEvent
from lms_cache.core.exceptions import UnknownStoreError
from lms_cache.services.backend import DataBackend, create_data_backend
from lms_cache.services.connectivity import Connectivity
from lms_cache.services.snapshot import SnapshotBackend
from lms_cache.store.definitions import build_definitions
from lms_cache.store.entity_store import EntityStore, create_store
from lms_cache.store.session_store import SessionStore
from lms_cache.utils.events import EventBus

logger = logging.getLogger(__name__)

RESET_EVENT = "store/reset"
PERSIST_ON = (StoreEvent.FETCHED, StoreEvent.CREATED, StoreEvent.UPDATED, StoreEvent.DELETED)


class StateContainer:
    """All entity stores behind one root, plus the cross-store RESET."""

    def __init__(self, stores: Dict[str, EntityStore], session: SessionStore, events: EventBus,
                 snapshots: Optional[SnapshotBackend] = None, persisted: Optional[List[str]] = None,
                 snapshot_prefix: str = default_settings.SNAPSHOT_PREFIX,
                 snapshot_ttl: int = default_settings.SNAPSHOT_TTL):
        self._stores = stores
        self.session = session
        self.events = events
        self.snapshots = snapshots
        self.persisted = [name for name in (persisted if persisted is not None else PERSISTED_STORES) if name in stores]
        self.snapshot_prefix = snapshot_prefix
        self.snapshot_ttl = snapshot_ttl

        if self.snapshots is not None:
            for name in self.persisted:
                for kind in PERSIST_ON:
                    self.events.subscribe(f"{name}/{kind.value}", self._persist_on_change)

    @property
    def courses(self) -> EntityStore:
        return self._stores["courses"]

    @property
    def enrollments(self) -> EntityStore:
        return self._stores["enrollments"]

    @property
    def quizzes(self) -> EntityStore:
        return self._stores["quizzes"]

    @property
    def live_sessions(self) -> EntityStore:
        return self._stores["live_sessions"]

    @property
    def notes(self) -> EntityStore:
        return self._stores["notes"]

    @property
    def users(self) -> EntityStore:
        return self._stores["users"]

    @property
    def connectivity(self) -> Connectivity:
        return self.session.connectivity

    @property
    def names(self) -> List[str]:
        return list(self._stores)

    def store(self, name: str) -> EntityStore:
        try:
            return self._stores[name]
        except KeyError:
            raise UnknownStoreError(name)

    def subscribe(self, event_type: str, handler: Callable):
        self.events.subscribe(event_type, handler)

    def reset(self) -> None:
        for store in self._stores.values():
            store.reset()
        self.session.reset()
        logger.info(f"Reset {len(self._stores)} stores and the session")

    async def logout(self) -> None:
        self.reset()
        if self.snapshots is not None:
            for name in self.persisted:
                await self.snapshots.delete(self._snapshot_key(name))
        await self.events.publish(RESET_EVENT, {"stores": self.names})

    def _snapshot_key(self, name: str) -> str:
        return f"{self.snapshot_prefix}:{name}"

    async def _persist_on_change(self, data: Dict[str, Any]):
        await self.persist([data["store"]])

    async def persist(self, names: Optional[List[str]] = None) -> int:
        if self.snapshots is None:
            return 0
        saved = 0
        for name in names or self.persisted:
            if await self.snapshots.set(self._snapshot_key(name), self.store(name).snapshot(), ttl=self.snapshot_ttl):
                saved += 1
        logger.debug(f"Persisted {saved} store snapshot(s)")
        return saved

    async def restore(self) -> List[str]:
        if self.snapshots is None:
            return []
        restored = []
        for name in self.persisted:
            data = await self.snapshots.get(self._snapshot_key(name))
            if data and self.store(name).restore(data):
                restored.append(name)
        return restored

    def stats(self) -> Dict[str, Any]:
        return {
            "stores": {name: store.stats() for name, store in self._stores.items()},
            "session": self.session.stats(),
            "snapshots": type(self.snapshots).__name__ if self.snapshots is not None else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def create_container(config: Settings = default_settings, backend: Optional[DataBackend] = None,
                     connectivity: Optional[Connectivity] = None, snapshots: Optional[SnapshotBackend] = None,
                     clock: Callable[[], float] = time.time) -> StateContainer:
    backend = backend or create_data_backend(config)
    connectivity = connectivity or Connectivity()
    events = EventBus()
    stores = {
        name: create_store(definition, backend, connectivity, events=events, clock=clock)
        for name, definition in build_definitions(config).items()
    }
    return StateContainer(
        stores,
        SessionStore(backend, connectivity),
        events,
        snapshots=snapshots,
        snapshot_prefix=config.SNAPSHOT_PREFIX,
        snapshot_ttl=config.SNAPSHOT_TTL,
    )
