"""Activity domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ActivityType(str, Enum):
    """Kind of activity."""

    TASK = "TASK"
    MEETING = "MEETING"
    CALL = "CALL"
    EMAIL = "EMAIL"
    SYSTEM_TASK = "SYSTEM_TASK"


class ActivityCreate(BaseModel):
    """Data required to create an activity."""

    subject: str = Field(..., min_length=1, max_length=500)
    type: ActivityType = ActivityType.TASK
    notes: str | None = Field(None, max_length=10000)
    lead_id: UUID | None = None
    deal_id: UUID | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    assigned_to_user_id: UUID | None = None
    due_date: datetime | None = None
    is_done: bool = False
    is_system_activity: bool = False


class Activity(BaseModel):
    """Full activity entity as stored."""

    id: UUID
    user_id: UUID
    subject: str
    type: ActivityType
    notes: str | None = None
    lead_id: UUID | None = None
    deal_id: UUID | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    assigned_to_user_id: UUID | None = None
    due_date: datetime | None = None
    is_done: bool = False
    is_system_activity: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
