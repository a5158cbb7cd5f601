from typing import Any, Dict, List
import logging

from lms_cache.schemas.enrollment import Enrollment, progress_patch
from lms_cache.store.entity_store import EntityStore

logger = logging.getLogger(__name__)


async def update_enrollment_progress(store: EntityStore, user_id: str, course_id: str,
                                     lessons: List[Dict[str, Any]], progress: float) -> Enrollment:
    patch = progress_patch(lessons, progress)
    enrollment = await store.update_where({"user_id": user_id, "course_id": course_id}, patch)
    logger.info(f"Saved progress {progress} for user {user_id} in course {course_id}")
    return enrollment
