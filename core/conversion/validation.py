"""
Conversion validator.

Decides whether a lead or deal may be converted and collects the reasons it
may not (errors) or should perhaps not (warnings). Read-only: never mutates.
"""

import logging
from uuid import UUID

from core.config import ConversionConfig
from core.models import (
    ConversionIssueCode,
    Deal,
    EntityType,
    Lead,
    ValidationIssue,
    ValidationResult,
    WorkflowStep,
)
from core.services.deal_service import DealService
from core.services.lead_service import LeadService
from core.services.workflow_service import WorkflowService
from utils.timezone import days_since
from utils.user_context import has_permission, user_context

logger = logging.getLogger(__name__)


def _issue(code: ConversionIssueCode, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, message=message)


class ConversionValidator:
    """
    Validates proposed conversions.

    Blocking errors: NOT_FOUND, ALREADY_CONVERTED, INSUFFICIENT_PERMISSION,
    TERMINAL_STATE, IDENTITY_CONFLICT, SYSTEM_ERROR.
    Warnings (never block): LOW_SCORE, MISSING_CONTACT, MISSING_VALUE,
    HIGH_PROBABILITY, PREMATURE_CONVERSION, CIRCULAR_CONVERSION.
    """

    def __init__(
        self,
        leads: LeadService,
        deals: DealService,
        workflows: WorkflowService,
        config: ConversionConfig | None = None
    ):
        self.leads = leads
        self.deals = deals
        self.workflows = workflows
        self.config = config or ConversionConfig()

    def validate(
        self,
        source_type: EntityType,
        source_id: UUID,
        target_type: EntityType,
        acting_user_id: UUID
    ) -> ValidationResult:
        """
        Validate converting source_id of source_type into target_type.

        Lookups run as acting_user_id, so rows hidden from that user by RLS
        report NOT_FOUND. Lookup failures are reported as a single
        SYSTEM_ERROR instead of raising.
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        source_entity: Lead | Deal | None = None

        try:
            with user_context(acting_user_id):
                if source_type == EntityType.LEAD:
                    source_entity = self._check_lead(source_id, target_type, acting_user_id, errors, warnings)
                else:
                    source_entity = self._check_deal(source_id, target_type, acting_user_id, errors, warnings)
        except Exception:
            logger.exception("Conversion validation failed for %s %s", source_type.value, source_id)
            return ValidationResult(
                is_valid=False,
                can_proceed=False,
                errors=[_issue(
                    ConversionIssueCode.SYSTEM_ERROR,
                    "Validation failed due to system error"
                )],
                warnings=warnings,
            )

        if source_type == target_type:
            errors.append(_issue(
                ConversionIssueCode.IDENTITY_CONFLICT,
                "Cannot convert entity to the same type"
            ))

        return ValidationResult(
            is_valid=not errors,
            can_proceed=not errors,
            errors=errors,
            warnings=warnings,
            source_entity=source_entity,
        )

    def _can_modify(self, entity: Lead | Deal, entity_type: EntityType, acting_user_id: UUID) -> bool:
        if entity.user_id == acting_user_id or entity.assigned_to_user_id == acting_user_id:
            return True
        return has_permission(f"{entity_type.value}:update_any")

    def _check_lead(
        self,
        lead_id: UUID,
        target_type: EntityType,
        acting_user_id: UUID,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue]
    ) -> Lead | None:
        lead = self.leads.get_by_id(lead_id)
        if lead is None:
            errors.append(_issue(ConversionIssueCode.NOT_FOUND, "Lead not found or access denied"))
            return None

        if lead.is_converted:
            errors.append(_issue(
                ConversionIssueCode.ALREADY_CONVERTED,
                f"Lead is already converted to deal {lead.converted_to_deal_id}"
            ))

        if not self._can_modify(lead, EntityType.LEAD, acting_user_id):
            errors.append(_issue(
                ConversionIssueCode.INSUFFICIENT_PERMISSION,
                "Insufficient permissions to convert this lead"
            ))

        if target_type == EntityType.DEAL:
            threshold = self.config.low_score_threshold
            if (lead.lead_score or 0) < threshold:
                warnings.append(_issue(
                    ConversionIssueCode.LOW_SCORE,
                    f"Lead score is below {threshold} - consider qualification before conversion"
                ))
            if not lead.has_contact:
                warnings.append(_issue(
                    ConversionIssueCode.MISSING_CONTACT,
                    "Lead has no contact information - deal may lack proper relationships"
                ))
            if not lead.has_estimated_value:
                warnings.append(_issue(
                    ConversionIssueCode.MISSING_VALUE,
                    "Lead has no estimated value - deal amount will be set to 0"
                ))
            if lead.original_deal_id:
                warnings.append(_issue(
                    ConversionIssueCode.CIRCULAR_CONVERSION,
                    "This lead was previously converted from a deal - creating circular conversion"
                ))

        return lead

    def _check_deal(
        self,
        deal_id: UUID,
        target_type: EntityType,
        acting_user_id: UUID,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue]
    ) -> Deal | None:
        deal = self.deals.get_by_id(deal_id)
        if deal is None:
            errors.append(_issue(ConversionIssueCode.NOT_FOUND, "Deal not found or access denied"))
            return None

        if deal.is_converted:
            errors.append(_issue(
                ConversionIssueCode.ALREADY_CONVERTED,
                f"Deal is already converted to lead {deal.converted_to_lead_id}"
            ))

        if not self._can_modify(deal, EntityType.DEAL, acting_user_id):
            errors.append(_issue(
                ConversionIssueCode.INSUFFICIENT_PERMISSION,
                "Insufficient permissions to convert this deal"
            ))

        if target_type != EntityType.LEAD:
            return deal

        step = self._current_step(deal)
        if step is not None and step.is_won:
            errors.append(_issue(
                ConversionIssueCode.TERMINAL_STATE,
                "Cannot convert a won deal back to lead"
            ))

        probability = deal.deal_specific_probability
        if probability is None and step is not None:
            probability = (step.metadata or {}).get("deal_probability")
        if probability is not None and float(probability) >= self.config.high_probability_threshold:
            warnings.append(_issue(
                ConversionIssueCode.HIGH_PROBABILITY,
                f"Deal has high probability ({self.config.high_probability_threshold:.0%}+) "
                "- confirm conversion is appropriate"
            ))

        min_days = self.config.premature_conversion_days
        if days_since(deal.created_at) < min_days:
            warnings.append(_issue(
                ConversionIssueCode.PREMATURE_CONVERSION,
                f"Deal is less than {min_days} days old - consider if conversion is premature"
            ))

        original_lead = self.leads.find_converted_to_deal(deal.id)
        if original_lead is not None:
            warnings.append(_issue(
                ConversionIssueCode.CIRCULAR_CONVERSION,
                f'This deal was converted from lead "{original_lead.name}" - creating circular conversion'
            ))

        return deal

    def _current_step(self, deal: Deal) -> WorkflowStep | None:
        if deal.wfm_project_id is None:
            return None
        project = self.workflows.get_project(deal.wfm_project_id)
        if project is None or project.current_step_id is None:
            return None
        return self.workflows.get_step(project.current_step_id)
