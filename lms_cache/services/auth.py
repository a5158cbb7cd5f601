from typing import Optional
import logging

from lms_cache.core.cache_config import TABLES
from lms_cache.core.constants import DEFAULT_ROLE
from lms_cache.core.exceptions import OfflineError, RemoteFailure
from lms_cache.schemas.user import CurrentUser
from lms_cache.services.backend import DataBackend
from lms_cache.services.connectivity import Connectivity

logger = logging.getLogger(__name__)


async def _role_from_table(backend: DataBackend, user_id: str) -> Optional[str]:
    try:
        row = await backend.select_one(TABLES["user_roles"], "role", filters={"user_id": user_id})
    except RemoteFailure as e:
        logger.warning(f"Role lookup failed for user {user_id}: {e.reason}")
        return None
    return row.get("role") if row else None


async def resolve_current_user(backend: DataBackend, connectivity: Connectivity) -> Optional[CurrentUser]:
    """Loads the signed-in user, or ``None`` without a session.

    The role comes from the user metadata, then the role table, then
    defaults to learner.
    """
    if not connectivity.is_online():
        raise OfflineError()

    auth_user = await backend.get_auth_user()
    if not auth_user:
        return None

    metadata = auth_user.get("user_metadata") or {}
    role = metadata.get("role") or await _role_from_table(backend, str(auth_user["id"])) or DEFAULT_ROLE

    return CurrentUser(
        id=auth_user["id"],
        email=auth_user.get("email"),
        name=metadata.get("name") or "",
        role=role,
    )
