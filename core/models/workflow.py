"""Workflow (WFM) domain models: project types, workflow steps and projects."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class StepRole(str, Enum):
    """
    Administrator-assigned meaning of a workflow step.

    Stored as metadata["role"] on the step. Lookups that need a step with a
    particular meaning read the role first and only fall back to matching
    the step's display name.
    """

    QUALIFIED = "QUALIFIED"
    HOT = "HOT"
    SCOPING = "SCOPING"
    PROPOSAL = "PROPOSAL"
    CONVERTED_MARKER = "CONVERTED_MARKER"
    WON = "WON"
    LOST = "LOST"


class ProjectType(BaseModel):
    """A class of WFM projects bound to a default workflow."""

    id: UUID
    name: str
    description: str | None = None
    default_workflow_id: UUID | None = None
    is_archived: bool = False

    model_config = {"from_attributes": True}


class WorkflowStep(BaseModel):
    """One node of a workflow. Its display name is the name of its status."""

    id: UUID
    workflow_id: UUID
    status_id: UUID | None = None
    name: str = ""
    step_order: int = 0
    is_initial_step: bool = False
    is_final_step: bool = False
    metadata: dict[str, Any] | None = None

    model_config = {"from_attributes": True}

    @property
    def role(self) -> StepRole | None:
        raw = (self.metadata or {}).get("role")
        if raw is None:
            return None
        try:
            return StepRole(str(raw).upper())
        except ValueError:
            return None

    @property
    def outcome_type(self) -> str | None:
        raw = (self.metadata or {}).get("outcome_type")
        return str(raw).upper() if raw is not None else None

    @property
    def is_won(self) -> bool:
        return self.outcome_type == "WON" or self.role == StepRole.WON

    def name_contains(self, *keywords: str) -> bool:
        """Case-insensitive substring match against the step name."""
        lowered = (self.name or "").lower()
        return any(k.lower() in lowered for k in keywords)


class WFMProjectCreate(BaseModel):
    """Data required to bind a workflow instance to an entity."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    project_type_id: UUID
    workflow_id: UUID
    current_step_id: UUID


class WFMProject(BaseModel):
    """Live workflow instance bound to one lead or deal."""

    id: UUID
    name: str
    description: str | None = None
    project_type_id: UUID
    workflow_id: UUID
    current_step_id: UUID | None = None
    created_by_user_id: UUID | None = None
    updated_by_user_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
