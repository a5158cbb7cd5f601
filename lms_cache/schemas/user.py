from pydantic import BaseModel, ConfigDict
from typing import Optional

from lms_cache.core.constants import DEFAULT_ROLE
from lms_cache.schemas.base import EntityBase, PayloadBase


class UserUpdate(PayloadBase):
    partial = True

    name: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None


class User(EntityBase):
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: str = ""
    role: str = DEFAULT_ROLE

    model_config = ConfigDict(coerce_numbers_to_str=True)
