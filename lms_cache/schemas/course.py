from __future__ import annotations
from pydantic import Field, computed_field
from typing import Optional, List, Any, Dict

from lms_cache.schemas.base import EntityBase, PayloadBase

class CourseFields(PayloadBase):
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    level: Optional[str] = None
    is_active: bool = True
    instructor: Optional[str] = None
    instructor_title: Optional[str] = None
    instructor_avatar: Optional[str] = None
    category: Optional[str] = None
    objectives: List[str] = Field(default_factory=list)
    lessons: List[Dict[str, Any]] = Field(default_factory=list)

class CourseCreate(CourseFields):
    pass

class CourseUpdate(CourseFields):
    partial = True
    title: Optional[str] = None
    is_active: Optional[bool] = None
    objectives: Optional[List[str]] = None
    lessons: Optional[List[Dict[str, Any]]] = None

class Course(EntityBase):
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    level: Optional[str] = None
    is_active: Optional[bool] = True
    instructor: Optional[str] = None
    instructor_title: Optional[str] = None
    instructor_avatar: Optional[str] = None
    category: Optional[str] = None
    objectives: Optional[List[str]] = Field(default_factory=list)
    lessons: Optional[List[Dict[str, Any]]] = Field(default_factory=list)
    enrollments: Optional[List[Dict[str, Any]]] = Field(default_factory=list)

    @computed_field
    @property
    def enrollment_count(self) -> int:
        if not self.enrollments:
            return 0
        return sum(int(item.get("count", 0) or 0) for item in self.enrollments)
