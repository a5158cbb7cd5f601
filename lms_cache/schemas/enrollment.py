from pydantic import BaseModel, Field
from typing import Optional, List, Any, Dict
from datetime import datetime, timezone

from lms_cache.schemas.base import EntityBase, PayloadBase


class EnrollmentCreate(PayloadBase):
    user_id: str
    course_id: str
    progress: float = 0


class EnrollmentUpdate(PayloadBase):
    partial = True

    lessons: Optional[List[Dict[str, Any]]] = None
    completed_lessons: Optional[List[str]] = None
    progress: Optional[float] = None
    updated_at: Optional[datetime] = None


class LessonProgress(BaseModel):
    id: str
    completed: bool = False

    model_config = {"extra": "allow", "coerce_numbers_to_str": True}


def progress_patch(lessons: List[Dict[str, Any]], progress: float) -> EnrollmentUpdate:
    """Builds the progress update for an enrollment from its lesson list.

    Only lessons flagged ``completed`` end up in ``completed_lessons``.
    """
    parsed = [LessonProgress.model_validate(lesson) for lesson in lessons]
    return EnrollmentUpdate(
        lessons=lessons,
        completed_lessons=[lesson.id for lesson in parsed if lesson.completed],
        progress=progress,
        updated_at=datetime.now(timezone.utc),
    )


class Enrollment(EntityBase):
    user_id: str
    course_id: str
    lessons: Optional[List[Dict[str, Any]]] = Field(default_factory=list)
    completed_lessons: Optional[List[str]] = Field(default_factory=list)
    progress: Optional[float] = None
    course: Optional[Dict[str, Any]] = None
    user: Optional[Dict[str, Any]] = None
