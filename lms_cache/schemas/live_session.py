from typing import Optional
from datetime import datetime

from lms_cache.core.constants import LiveSessionStatusEnum
from lms_cache.schemas.base import EntityBase, PayloadBase


class LiveSessionCreate(PayloadBase):
    course_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: LiveSessionStatusEnum = LiveSessionStatusEnum.SCHEDULED
    room_id: Optional[str] = None
    instructor_id: str


class LiveSessionUpdate(PayloadBase):
    partial = True

    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[LiveSessionStatusEnum] = None
    room_id: Optional[str] = None


class LiveSession(EntityBase):
    course_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: LiveSessionStatusEnum = LiveSessionStatusEnum.SCHEDULED
    room_id: Optional[str] = None
    instructor_id: str
    instructor_name: Optional[str] = None
    enrolled_students_count: Optional[int] = None
    attendees_count: Optional[int] = None
