"""Deal domain models."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class DealCreate(BaseModel):
    """Data required to create a deal."""

    name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal | None = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    expected_close_date: date | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    assigned_to_user_id: UUID | None = None
    deal_specific_probability: float | None = Field(None, ge=0, le=1)


class Deal(BaseModel):
    """Full deal entity as stored."""

    id: UUID
    user_id: UUID
    name: str
    amount: Decimal | None = None
    currency: str | None = None
    expected_close_date: date | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    assigned_to_user_id: UUID | None = None
    deal_specific_probability: float | None = None
    wfm_project_id: UUID | None = None
    last_activity_at: datetime | None = None
    converted_to_lead_id: UUID | None = None
    conversion_reason: str | None = None
    archived_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_converted(self) -> bool:
        """Whether deal has already been converted back to a lead."""
        return self.converted_to_lead_id is not None
