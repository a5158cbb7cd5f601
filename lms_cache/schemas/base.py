from pydantic import BaseModel, ConfigDict
from typing import ClassVar, Optional
from datetime import datetime


class EntityBase(BaseModel):
    """Common shape of every row cached by a store.

    Ids are opaque strings. Columns the schema does not name (joined
    relations, counts) are kept as extra attributes.
    """
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        use_enum_values=True,
        coerce_numbers_to_str=True,
    )


class PayloadBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    # Update payloads send only the fields the caller set
    partial: ClassVar[bool] = False

    def to_row(self) -> dict:
        if self.partial:
            return self.model_dump(mode="json", by_alias=True, exclude_unset=True)
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
