from pydantic import Field
from typing import Optional, List, Any, Dict

from lms_cache.schemas.base import EntityBase, PayloadBase


class QuizCreate(PayloadBase):
    title: str
    description: Optional[str] = None
    course_id: str
    course_name: Optional[str] = Field(None, alias="courseName")
    time_limit: Optional[int] = Field(None, alias="timeLimit")
    passing_score: int = Field(0, alias="passingScore")
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    is_published: bool = Field(False, alias="isPublished")


class QuizUpdate(QuizCreate):
    partial = True

    title: Optional[str] = None
    course_id: Optional[str] = None
    passing_score: Optional[int] = Field(None, alias="passingScore")
    questions: Optional[List[Dict[str, Any]]] = None
    is_published: Optional[bool] = Field(None, alias="isPublished")


class Quiz(EntityBase):
    title: str
    description: Optional[str] = None
    course_id: str
    course_name: Optional[str] = Field(None, alias="courseName")
    time_limit: Optional[int] = Field(None, alias="timeLimit")
    passing_score: Optional[int] = Field(0, alias="passingScore")
    questions: Optional[List[Dict[str, Any]]] = Field(default_factory=list)
    is_published: Optional[bool] = Field(False, alias="isPublished")
