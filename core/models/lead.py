"""Lead domain models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr


class LeadCreate(BaseModel):
    """Data required to create a lead."""

    name: str = Field(..., min_length=1, max_length=255)
    contact_name: str | None = Field(None, max_length=255)
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(None, max_length=50)
    company_name: str | None = Field(None, max_length=255)
    estimated_value: Decimal | None = Field(None, ge=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    estimated_close_date: date | None = None
    lead_score: int = Field(0, ge=0, le=100)
    source: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=10000)
    assigned_to_user_id: UUID | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    original_deal_id: UUID | None = None


class Lead(BaseModel):
    """Full lead entity as stored."""

    id: UUID
    user_id: UUID
    name: str
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    company_name: str | None = None
    estimated_value: Decimal | None = None
    currency: str | None = None
    estimated_close_date: date | None = None
    lead_score: int | None = None
    lead_score_factors: dict[str, Any] | None = None
    source: str | None = None
    description: str | None = None
    assigned_to_user_id: UUID | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    wfm_project_id: UUID | None = None
    last_activity_at: datetime | None = None
    converted_at: datetime | None = None
    converted_to_deal_id: UUID | None = None
    converted_to_person_id: UUID | None = None
    converted_to_organization_id: UUID | None = None
    converted_by_user_id: UUID | None = None
    original_deal_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_converted(self) -> bool:
        """Converted iff both the timestamp and the target deal are recorded."""
        return self.converted_at is not None and self.converted_to_deal_id is not None

    @property
    def has_contact(self) -> bool:
        return bool(self.contact_name or self.contact_email)

    @property
    def has_estimated_value(self) -> bool:
        return self.estimated_value is not None and self.estimated_value > 0
