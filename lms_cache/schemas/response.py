from pydantic import BaseModel, Field
from typing import Generic, TypeVar, Optional, Any, Dict, List

DataType = TypeVar("DataType")

class APIResponse(BaseModel, Generic[DataType]):
    """Envelope for every admin API response."""
    message: str = Field(..., description="A human-readable message about the response.")
    data: Optional[DataType] = Field(None, description="The payload, if any.")

class StoreHealth(BaseModel):
    loaded: bool
    fresh: bool
    loading: bool
    error: Optional[str] = None

class CacheHealth(BaseModel):
    status: str = Field(..., description="'healthy' or 'degraded'")
    online: bool
    snapshots: Optional[str] = Field(None, description="Snapshot backend in use, if any")
    stores: Dict[str, StoreHealth]
    failing: List[str] = Field(default_factory=list)

class ErrorDetail(BaseModel):
    code: str = Field(..., description="Error code for client handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")

class ErrorResponse(BaseModel):
    """Error envelope produced by the exception handlers."""
    error: ErrorDetail = Field(..., description="Error details")
    timestamp: str = Field(..., description="ISO 8601 timestamp of error")
    path: str = Field(..., description="Request path that caused the error")
    request_id: Optional[str] = Field(None, description="Unique request identifier for debugging")
