"""Person (contact) domain models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, model_validator


class PersonCreate(BaseModel):
    """Data required to create a person."""

    first_name: str | None = Field(None, max_length=255)
    last_name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    organization_id: UUID | None = None
    notes: str | None = Field(None, max_length=10000)

    @model_validator(mode="after")
    def require_name_or_email(self) -> "PersonCreate":
        """A person needs at least a name part or an email to be findable."""
        if not any([self.first_name, self.last_name, self.email]):
            raise ValueError("At least one of first_name, last_name, or email is required")
        return self


class Person(BaseModel):
    """Full person entity as stored."""

    id: UUID
    user_id: UUID
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    organization_id: UUID | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        parts = [p for p in [self.first_name, self.last_name] if p]
        return " ".join(parts)
