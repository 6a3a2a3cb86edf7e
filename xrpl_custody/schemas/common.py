"""Common schema definitions."""
from datetime import datetime
from typing import Generic, TypeVar, Optional, List
from pydantic import BaseModel, Field

from xrpl_custody.models.user import UserRole

T = TypeVar("T")


class CorrelatedResponse(BaseModel, Generic[T]):
    """Response wrapper with correlation ID."""
    correlation_id: str = Field(..., description="Request correlation ID for tracing")
    data: T
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated response wrapper."""
    correlation_id: str
    items: List[T]
    total: int
    limit: int
    offset: int
    has_more: bool


class ErrorResponse(BaseModel):
    """Standard error response."""
    correlation_id: str
    error: str
    error_code: str
    details: Optional[dict] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ActorSnapshot(BaseModel):
    """Identity of the caller, copied by value onto approval records."""
    user_id: str
    display_name: str
    role: UserRole

    @classmethod
    def from_user(cls, user) -> "ActorSnapshot":
        return cls(user_id=user.id, display_name=user.display_name, role=user.role)
