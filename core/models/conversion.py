"""Conversion domain models: validation, transition plans, options, results, history."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, model_validator


class EntityType(str, Enum):
    """Business object types that can be converted into each other."""

    LEAD = "lead"
    DEAL = "deal"


class ConversionType(str, Enum):
    """Direction of a conversion event."""

    LEAD_TO_DEAL = "LEAD_TO_DEAL"
    DEAL_TO_LEAD = "DEAL_TO_LEAD"

    @classmethod
    def between(cls, source: EntityType, target: EntityType) -> "ConversionType":
        if source == EntityType.LEAD and target == EntityType.DEAL:
            return cls.LEAD_TO_DEAL
        if source == EntityType.DEAL and target == EntityType.LEAD:
            return cls.DEAL_TO_LEAD
        raise ValueError(f"No conversion from {source.value} to {target.value}")


class MappingStrategy(str, Enum):
    """How the target workflow step was chosen."""

    AUTO = "AUTO"
    MANUAL = "MANUAL"
    DEFAULT = "DEFAULT"


# =============================================================================
# VALIDATION
# =============================================================================


class ConversionIssueCode(str, Enum):
    """Closed set of validation outcomes. Errors block, warnings never do."""

    # Blocking
    NOT_FOUND = "NOT_FOUND"
    ALREADY_CONVERTED = "ALREADY_CONVERTED"
    INSUFFICIENT_PERMISSION = "INSUFFICIENT_PERMISSION"
    TERMINAL_STATE = "TERMINAL_STATE"
    IDENTITY_CONFLICT = "IDENTITY_CONFLICT"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    # Non-blocking
    LOW_SCORE = "LOW_SCORE"
    MISSING_CONTACT = "MISSING_CONTACT"
    MISSING_VALUE = "MISSING_VALUE"
    HIGH_PROBABILITY = "HIGH_PROBABILITY"
    PREMATURE_CONVERSION = "PREMATURE_CONVERSION"
    CIRCULAR_CONVERSION = "CIRCULAR_CONVERSION"


class ValidationIssue(BaseModel):
    """One validation error or warning."""

    code: ConversionIssueCode
    message: str


class ValidationResult(BaseModel):
    """Outcome of validating a proposed conversion."""

    is_valid: bool
    can_proceed: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    source_entity: Any = None

    def has_error(self, code: ConversionIssueCode) -> bool:
        return any(e.code == code for e in self.errors)

    def has_warning(self, code: ConversionIssueCode) -> bool:
        return any(w.code == code for w in self.warnings)


# =============================================================================
# WFM TRANSITION
# =============================================================================


class TransitionPlan(BaseModel):
    """Computed target workflow position for a conversion and how it was derived."""

    source_project_type_id: UUID | None = None
    source_workflow_id: UUID | None = None
    source_current_step_id: UUID | None = None
    source_converted_step_id: UUID | None = None
    target_project_type_id: UUID | None = None
    target_workflow_id: UUID | None = None
    target_initial_step_id: UUID | None = None
    target_step_id: UUID | None = None
    transition_reason: str
    mapping_strategy: MappingStrategy = MappingStrategy.DEFAULT
    errors: list[str] = Field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        """True when lookups failed and the plan cannot be executed."""
        return self.target_project_type_id is None or self.target_workflow_id is None

    @property
    def effective_step_id(self) -> UUID | None:
        return self.target_step_id or self.target_initial_step_id


class TransitionResult(BaseModel):
    """Outcome of materializing a TransitionPlan."""

    success: bool
    message: str
    wfm_project_id: UUID | None = None
    current_step_id: UUID | None = None
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# OPTIONS
# =============================================================================


class DealOverrides(BaseModel):
    """Caller-supplied deal fields that win over lead-derived defaults."""

    name: str | None = Field(None, min_length=1, max_length=255)
    amount: Decimal | None = Field(None, ge=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    expected_close_date: date | None = None
    deal_specific_probability: float | None = Field(None, ge=0, le=1)
    assigned_to_user_id: UUID | None = None
    wfm_project_type_id: UUID | None = None


class PersonOverrides(BaseModel):
    first_name: str | None = Field(None, max_length=255)
    last_name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)


class OrganizationOverrides(BaseModel):
    name: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=10000)


class LeadConversionOptions(BaseModel):
    """Options for converting a lead into a deal."""

    preserve_activities: bool = True
    create_conversion_activity: bool = True
    notes: str | None = Field(None, max_length=10000)
    deal_data: DealOverrides | None = None
    person_data: PersonOverrides | None = None
    organization_data: OrganizationOverrides | None = None
    wfm_project_type_id: UUID | None = None
    target_wfm_step_id: UUID | None = None

    @property
    def project_type_override(self) -> UUID | None:
        if self.deal_data and self.deal_data.wfm_project_type_id:
            return self.deal_data.wfm_project_type_id
        return self.wfm_project_type_id

    def merged_with(self, override: "LeadConversionOptions | None") -> "LeadConversionOptions":
        """Fields explicitly set on override replace this object's values."""
        if override is None:
            return self
        return self.model_copy(
            update={name: getattr(override, name) for name in override.model_fields_set}
        )


class LeadOverrides(BaseModel):
    """Caller-supplied lead fields for a deal-to-lead conversion."""

    name: str | None = Field(None, min_length=1, max_length=255)
    contact_name: str | None = Field(None, max_length=255)
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(None, max_length=50)
    company_name: str | None = Field(None, max_length=255)
    estimated_value: Decimal | None = Field(None, ge=0)
    estimated_close_date: date | None = None
    source: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=10000)


class DealConversionOptions(BaseModel):
    """Options for converting a deal back into a lead."""

    conversion_reason: str | None = Field(None, max_length=500)
    lead_data: LeadOverrides | None = None
    archive_deal: bool = False
    notes: str | None = Field(None, max_length=10000)
    wfm_project_type_id: UUID | None = None
    target_wfm_step_id: UUID | None = None


# =============================================================================
# RESULTS
# =============================================================================


class SideEffectFailure(BaseModel):
    """A best-effort step that failed without aborting the conversion."""

    step: str
    message: str


class ConversionResult(BaseModel):
    """Fields shared by both conversion directions."""

    success: bool
    conversion_id: UUID | None = None
    message: str = ""
    error_code: ConversionIssueCode | None = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    side_effect_failures: list[SideEffectFailure] = Field(default_factory=list)


class LeadConversionResult(ConversionResult):
    deal_id: UUID | None = None
    person_id: UUID | None = None
    organization_id: UUID | None = None
    wfm_project_id: UUID | None = None
    wfm_transition_plan: TransitionPlan | None = None


class DealConversionResult(ConversionResult):
    lead_id: UUID | None = None
    deal_status_updated: bool = False
    wfm_project_id: UUID | None = None
    wfm_transition_plan: TransitionPlan | None = None


# =============================================================================
# HISTORY
# =============================================================================


class ConversionHistoryCreate(BaseModel):
    """Data recorded for one conversion event."""

    conversion_type: ConversionType | None = None
    source_entity_type: EntityType
    source_entity_id: UUID
    target_entity_type: EntityType
    target_entity_id: UUID
    conversion_reason: str | None = None
    conversion_data: dict[str, Any] = Field(default_factory=dict)
    wfm_transition_plan: dict[str, Any] | None = None
    converted_by_user_id: UUID

    @model_validator(mode="after")
    def match_direction(self) -> "ConversionHistoryCreate":
        direction = ConversionType.between(self.source_entity_type, self.target_entity_type)
        if self.conversion_type is None:
            self.conversion_type = direction
        elif self.conversion_type != direction:
            raise ValueError(
                f"{self.conversion_type.value} does not match "
                f"{self.source_entity_type.value} -> {self.target_entity_type.value}"
            )
        return self


class ConversionHistoryEntry(BaseModel):
    """Immutable conversion audit record as stored."""

    id: UUID
    conversion_type: ConversionType
    source_entity_type: EntityType
    source_entity_id: UUID
    target_entity_type: EntityType
    target_entity_id: UUID
    conversion_reason: str | None = None
    conversion_data: dict[str, Any] = Field(default_factory=dict)
    wfm_transition_plan: dict[str, Any] | None = None
    converted_by_user_id: UUID | None = None
    converted_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# BULK
# =============================================================================


class EntityRef(BaseModel):
    id: UUID
    name: str | None = None


class BulkConversionItem(BaseModel):
    """Per-lead outcome of a bulk run."""

    source_entity: EntityRef
    target_entity: EntityRef | None = None
    success: bool
    error: str | None = None


class BulkConversionSummary(BaseModel):
    total_processed: int = 0
    success_count: int = 0
    error_count: int = 0


class BulkConversionResult(BaseModel):
    """
    Aggregate of independent conversions.

    Items are processed at-least-once each with no batch atomicity: a failed
    item never undoes a successful one, and the batch has no pass/fail verdict.
    """

    summary: BulkConversionSummary
    results: list[BulkConversionItem] = Field(default_factory=list)
