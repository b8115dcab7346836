"""
Lead -> Deal conversion.

Runs the whole conversion inside one database transaction. The lead is
claimed with a compare-and-swap update, so a concurrent second conversion
of the same lead fails and leaves nothing behind. Side steps that are
allowed to fail (person/organization resolution, WFM project, activity
migration, the lead's own status move, the audit activity) each run in a
savepoint and are reported in result.side_effect_failures.
"""

import logging
from decimal import Decimal
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.config import ConversionConfig
from core.conversion.executor import TransitionExecutor
from core.conversion.history import ConversionHistoryRecorder
from core.conversion.planner import TransitionPlanner
from core.conversion.steps import best_effort
from core.conversion.validation import ConversionValidator
from core.errors import AlreadyConvertedError
from core.event_bus import EventBus
from core.events import LeadConvertedToDeal
from core.models import (
    ActivityCreate,
    ActivityType,
    ConversionHistoryCreate,
    ConversionIssueCode,
    DealCreate,
    EntityType,
    Lead,
    LeadConversionOptions,
    LeadConversionResult,
    OrganizationCreate,
    PersonCreate,
    SideEffectFailure,
    StepRole,
    TransitionPlan,
)
from core.services.activity_service import ActivityService
from core.services.deal_service import DealService
from core.services.lead_service import LeadService
from core.services.organization_service import OrganizationService
from core.services.person_service import PersonService
from core.services.workflow_service import WorkflowService
from utils.user_context import user_context

logger = logging.getLogger(__name__)


def split_contact_name(contact_name: str | None) -> tuple[str | None, str | None]:
    """'Jane van Dyke' -> ('Jane', 'van Dyke'). Empty parts become None."""
    parts = (contact_name or "").split()
    if not parts:
        return None, None
    return parts[0], " ".join(parts[1:]) or None


class LeadToDealConverter:
    """Converts leads into deals."""

    def __init__(
        self,
        postgres: PostgresClient,
        validator: ConversionValidator,
        planner: TransitionPlanner,
        executor: TransitionExecutor,
        history: ConversionHistoryRecorder,
        leads: LeadService,
        deals: DealService,
        people: PersonService,
        organizations: OrganizationService,
        activities: ActivityService,
        workflows: WorkflowService,
        config: ConversionConfig | None = None,
        event_bus: EventBus | None = None
    ):
        self.postgres = postgres
        self.validator = validator
        self.planner = planner
        self.executor = executor
        self.history = history
        self.leads = leads
        self.deals = deals
        self.people = people
        self.organizations = organizations
        self.activities = activities
        self.workflows = workflows
        self.config = config or ConversionConfig()
        self.event_bus = event_bus

    def convert_lead_to_deal(
        self,
        lead_id: UUID,
        options: LeadConversionOptions | None,
        acting_user_id: UUID
    ) -> LeadConversionResult:
        """
        Convert a lead into a deal.

        Args:
            lead_id: Lead to convert
            options: Overrides and switches; defaults preserve activities and
                create a conversion activity
            acting_user_id: User performing the conversion

        Returns:
            LeadConversionResult. success=False with the validator's errors
            when blocked; success=False with the exception message (and
            nothing persisted) on any unexpected failure.
        """
        options = options or LeadConversionOptions()

        with user_context(acting_user_id):
            validation = self.validator.validate(
                EntityType.LEAD, lead_id, EntityType.DEAL, acting_user_id
            )
            if not validation.can_proceed:
                return LeadConversionResult(
                    success=False,
                    message="Conversion validation failed",
                    error_code=validation.errors[0].code if validation.errors else None,
                    errors=[e.message for e in validation.errors],
                    warnings=validation.warnings,
                )

            lead: Lead = validation.source_entity
            logger.info("Starting lead to deal conversion for lead %s", lead_id)

            try:
                with self.postgres.transaction():
                    result = self._convert(lead, options, acting_user_id)
            except AlreadyConvertedError as e:
                logger.warning("Lead %s lost the conversion race: %s", lead_id, e)
                return LeadConversionResult(
                    success=False,
                    message="Lead was converted by another request",
                    error_code=ConversionIssueCode.ALREADY_CONVERTED,
                    errors=[str(e)],
                    warnings=validation.warnings,
                )
            except Exception as e:
                logger.exception("Lead to deal conversion failed for lead %s", lead_id)
                return LeadConversionResult(
                    success=False,
                    message="Conversion failed due to unexpected error",
                    error_code=ConversionIssueCode.SYSTEM_ERROR,
                    errors=[str(e)],
                    warnings=validation.warnings,
                )

        result.warnings = validation.warnings
        if self.event_bus is not None:
            self.event_bus.publish(LeadConvertedToDeal.create(lead_id, result, acting_user_id))
        return result

    # =========================================================================
    # CONVERSION BODY (runs inside the outer transaction)
    # =========================================================================

    def _convert(
        self,
        lead: Lead,
        options: LeadConversionOptions,
        acting_user_id: UUID
    ) -> LeadConversionResult:
        failures: list[SideEffectFailure] = []

        person = best_effort(
            self.postgres, "person_resolution", failures, self._resolve_person, lead, options
        )
        person_id, person_created = person if person else (None, False)

        organization = best_effort(
            self.postgres, "organization_resolution", failures, self._resolve_organization, lead, options
        )
        organization_id, organization_created = organization if organization else (None, False)

        if person_id and organization_id:
            best_effort(
                self.postgres, "person_organization_link", failures,
                self._link_person_to_organization, person_id, organization_id
            )

        plan = self.planner.plan(
            EntityType.LEAD,
            lead,
            EntityType.DEAL,
            override_project_type_id=options.project_type_override,
            override_step_id=options.target_wfm_step_id,
        )

        overrides = options.deal_data
        amount = overrides.amount if overrides and overrides.amount is not None else lead.estimated_value
        deal = self.deals.create(DealCreate(
            name=(overrides and overrides.name) or lead.name,
            amount=amount if amount is not None else Decimal("0"),
            currency=(overrides and overrides.currency) or lead.currency or self.config.default_currency,
            expected_close_date=(overrides and overrides.expected_close_date) or lead.estimated_close_date,
            person_id=person_id,
            organization_id=organization_id,
            assigned_to_user_id=(
                (overrides and overrides.assigned_to_user_id)
                or lead.assigned_to_user_id
                or acting_user_id
            ),
            deal_specific_probability=overrides.deal_specific_probability if overrides else None,
        ))
        logger.info("Created deal %s from lead %s", deal.id, lead.id)

        transition = self.executor.execute(
            plan, EntityType.DEAL, deal.id, acting_user_id, project_name=deal.name
        )
        if not transition.success:
            failures.append(SideEffectFailure(
                step="wfm_transition",
                message="; ".join(transition.errors) or transition.message,
            ))

        activities_moved = None
        if options.preserve_activities:
            activities_moved = best_effort(
                self.postgres, "activity_migration", failures,
                self.activities.move_lead_activities_to_deal,
                lead.id, deal.id, f"Migrated from lead conversion: {lead.name}"
            )

        self.leads.mark_converted(
            lead.id,
            deal.id,
            person_id=person_id,
            organization_id=organization_id,
            converted_by_user_id=acting_user_id,
        )

        lead_status_updated = bool(best_effort(
            self.postgres, "lead_status_update", failures, self._move_lead_to_converted_step, lead, plan
        ))

        conversion_id = self.history.record(ConversionHistoryCreate(
            source_entity_type=EntityType.LEAD,
            source_entity_id=lead.id,
            target_entity_type=EntityType.DEAL,
            target_entity_id=deal.id,
            conversion_reason="QUALIFIED",
            conversion_data={
                "personCreated": person_created,
                "organizationCreated": organization_created,
                "personId": str(person_id) if person_id else None,
                "organizationId": str(organization_id) if organization_id else None,
                "leadStatusUpdated": lead_status_updated,
                "wfmTransitionExecuted": transition.success,
                "activitiesMigrated": activities_moved,
                "notes": options.notes,
                "sideEffectFailures": [f.step for f in failures],
            },
            wfm_transition_plan=plan.model_dump(mode="json"),
            converted_by_user_id=acting_user_id,
        ))

        if options.create_conversion_activity:
            best_effort(
                self.postgres, "conversion_activity", failures,
                self.activities.create,
                ActivityCreate(
                    subject=f"Lead converted to deal: {deal.name}",
                    type=ActivityType.SYSTEM_TASK,
                    notes=options.notes or f'Converted from lead "{lead.name}"',
                    deal_id=deal.id,
                    person_id=person_id,
                    organization_id=organization_id,
                    assigned_to_user_id=deal.assigned_to_user_id,
                    is_done=True,
                    is_system_activity=True,
                )
            )

        return LeadConversionResult(
            success=True,
            conversion_id=conversion_id,
            message=f'Successfully converted lead "{lead.name}" to deal "{deal.name}"',
            deal_id=deal.id,
            person_id=person_id,
            organization_id=organization_id,
            wfm_project_id=transition.wfm_project_id,
            wfm_transition_plan=plan,
            side_effect_failures=failures,
        )

    # =========================================================================
    # SIDE STEPS
    # =========================================================================

    def _resolve_person(
        self,
        lead: Lead,
        options: LeadConversionOptions
    ) -> tuple[UUID, bool] | None:
        """(person_id, created) for the lead's contact, or None if it has none."""
        if lead.person_id:
            return lead.person_id, False

        if not (lead.contact_name or lead.contact_email):
            return None

        if lead.contact_email:
            existing = self.people.find_by_email(lead.contact_email)
            if existing is not None:
                logger.info("Reusing person %s for lead %s", existing.id, lead.id)
                return existing.id, False

        overrides = options.person_data
        first_name, last_name = split_contact_name(lead.contact_name)
        person = self.people.create(PersonCreate(
            first_name=(overrides and overrides.first_name) or first_name,
            last_name=(overrides and overrides.last_name) or last_name,
            email=(overrides and overrides.email) or lead.contact_email,
            phone=(overrides and overrides.phone) or lead.contact_phone,
            notes=f"Created from lead conversion: {lead.name}",
        ))
        return person.id, True

    def _resolve_organization(
        self,
        lead: Lead,
        options: LeadConversionOptions
    ) -> tuple[UUID, bool] | None:
        """(organization_id, created) for the lead's company, or None if it has none."""
        if lead.organization_id:
            return lead.organization_id, False

        if not lead.company_name:
            return None

        existing = self.organizations.find_by_name(lead.company_name)
        if existing is not None:
            logger.info("Reusing organization %s for lead %s", existing.id, lead.id)
            return existing.id, False

        overrides = options.organization_data
        organization = self.organizations.create(OrganizationCreate(
            name=(overrides and overrides.name) or lead.company_name,
            address=overrides.address if overrides else None,
            notes=(overrides and overrides.notes) or f"Created from lead conversion: {lead.name}",
        ))
        return organization.id, True

    def _link_person_to_organization(self, person_id: UUID, organization_id: UUID) -> None:
        """Link only people that have no organization yet."""
        person = self.people.get_by_id(person_id)
        if person is None or person.organization_id is not None:
            return
        self.people.link_organization(person_id, organization_id)

    def _move_lead_to_converted_step(self, lead: Lead, plan: TransitionPlan) -> bool:
        """Move the lead's own WFM project to its 'converted' step. False if it has none."""
        if lead.wfm_project_id is None or plan.source_workflow_id is None:
            return False

        step = self.workflows.find_marker_step(
            plan.source_workflow_id,
            StepRole.CONVERTED_MARKER,
            self.config.converted_to_deal_status,
        )
        step_id = step.id if step else plan.source_converted_step_id
        if step_id is None:
            logger.info("Lead workflow %s has no converted step", plan.source_workflow_id)
            return False

        self.workflows.move_to_step(lead.wfm_project_id, step_id)
        return True
