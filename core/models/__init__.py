"""Core domain models."""

from core.models.lead import Lead, LeadCreate
from core.models.deal import Deal, DealCreate
from core.models.person import Person, PersonCreate
from core.models.organization import Organization, OrganizationCreate
from core.models.activity import Activity, ActivityCreate, ActivityType
from core.models.workflow import (
    ProjectType, WorkflowStep, WFMProject, WFMProjectCreate, StepRole,
)
from core.models.conversion import (
    EntityType, ConversionType, MappingStrategy,
    ConversionIssueCode, ValidationIssue, ValidationResult,
    TransitionPlan, TransitionResult,
    DealOverrides, PersonOverrides, OrganizationOverrides, LeadConversionOptions,
    LeadOverrides, DealConversionOptions,
    SideEffectFailure, ConversionResult, LeadConversionResult, DealConversionResult,
    ConversionHistoryCreate, ConversionHistoryEntry,
    EntityRef, BulkConversionItem, BulkConversionSummary, BulkConversionResult,
)

__all__ = [
    # Lead / Deal
    "Lead", "LeadCreate", "Deal", "DealCreate",
    # Person / Organization
    "Person", "PersonCreate", "Organization", "OrganizationCreate",
    # Activity
    "Activity", "ActivityCreate", "ActivityType",
    # Workflow
    "ProjectType", "WorkflowStep", "WFMProject", "WFMProjectCreate", "StepRole",
    # Conversion
    "EntityType", "ConversionType", "MappingStrategy",
    "ConversionIssueCode", "ValidationIssue", "ValidationResult",
    "TransitionPlan", "TransitionResult",
    "DealOverrides", "PersonOverrides", "OrganizationOverrides", "LeadConversionOptions",
    "LeadOverrides", "DealConversionOptions",
    "SideEffectFailure", "ConversionResult", "LeadConversionResult", "DealConversionResult",
    "ConversionHistoryCreate", "ConversionHistoryEntry",
    "EntityRef", "BulkConversionItem", "BulkConversionSummary", "BulkConversionResult",
]
