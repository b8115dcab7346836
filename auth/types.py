"""Pydantic models for auth domain."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class Session(BaseModel):
    """An active user session."""

    token: str = Field(..., description="Session token (opaque string)")
    user_id: UUID
    permissions: list[str] = Field(
        default_factory=list,
        description="Capability strings such as 'lead:convert' or 'deal:update_any'",
    )
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime
