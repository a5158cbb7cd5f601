from lms_cache.schemas.base import EntityBase, PayloadBase


class NoteCreate(PayloadBase):
    course_id: str
    name: str
    file_url: str


class Note(EntityBase):
    course_id: str
    name: str
    file_url: str
