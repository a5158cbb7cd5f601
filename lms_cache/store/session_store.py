from typing import Optional
import logging

from lms_cache.core.exceptions import StoreError
from lms_cache.schemas.user import CurrentUser
from lms_cache.services.auth import resolve_current_user
from lms_cache.services.backend import DataBackend
from lms_cache.services.connectivity import Connectivity

logger = logging.getLogger(__name__)


class SessionStore:
    """Holds the signed-in user."""

    name = "session"

    def __init__(self, backend: DataBackend, connectivity: Connectivity):
        self.backend = backend
        self.connectivity = connectivity
        self.user: Optional[CurrentUser] = None
        self.loading = False
        self.error: Optional[str] = None
        self.loaded = False
        self._epoch = 0

    async def fetch_current_user(self) -> Optional[CurrentUser]:
        epoch = self._epoch
        self.loading = True
        self.error = None
        try:
            user = await resolve_current_user(self.backend, self.connectivity)
        except StoreError as e:
            if epoch == self._epoch:
                self.loading = False
                self.error = e.reason
            logger.warning(f"Current user lookup failed: {e.reason}")
            return None

        if epoch != self._epoch:
            logger.info("Dropping current user lookup that resolved after a reset")
            return None
        self.loading = False
        self.loaded = True
        self.user = user
        return user

    def reset(self) -> None:
        self.user = None
        self.loading = False
        self.error = None
        self.loaded = False
        self._epoch += 1

    def stats(self) -> dict:
        return {
            "name": self.name,
            "loading": self.loading,
            "loaded": self.loaded,
            "error": self.error,
            "user_id": self.user.id if self.user else None,
            "role": self.user.role if self.user else None,
        }
