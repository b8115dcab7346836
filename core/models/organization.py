"""Organization domain models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class OrganizationCreate(BaseModel):
    """Data required to create an organization."""

    name: str = Field(..., min_length=1, max_length=255)
    address: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=10000)


class Organization(BaseModel):
    """Full organization entity as stored."""

    id: UUID
    user_id: UUID
    name: str
    address: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
