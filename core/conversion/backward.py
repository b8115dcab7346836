"""
Deal -> Lead conversion.

Creates a lead from a deal that is going back to qualification, binds it
to a lead workflow, claims the deal (compare-and-swap on
converted_to_lead_id) and moves the deal to its "Converted to Lead" step.
Everything runs in one transaction; the deal's status move and optional
archiving are best-effort savepoints.
"""

import logging
from uuid import UUID

from pydantic import EmailStr, TypeAdapter, ValidationError

from clients.postgres_client import PostgresClient
from core.config import ConversionConfig
from core.conversion.executor import TransitionExecutor
from core.conversion.history import ConversionHistoryRecorder
from core.conversion.planner import TransitionPlanner
from core.conversion.steps import best_effort
from core.conversion.validation import ConversionValidator
from core.errors import AlreadyConvertedError, ConfigurationError
from core.event_bus import EventBus
from core.events import DealConvertedToLead
from core.models import (
    ConversionHistoryCreate,
    ConversionIssueCode,
    Deal,
    DealConversionOptions,
    DealConversionResult,
    EntityType,
    LeadCreate,
    ProjectType,
    SideEffectFailure,
    StepRole,
)
from core.services.deal_service import DealService
from core.services.lead_service import LeadService
from core.services.organization_service import OrganizationService
from core.services.person_service import PersonService
from core.services.workflow_service import WorkflowService
from utils.user_context import user_context

logger = logging.getLogger(__name__)

_email = TypeAdapter(EmailStr)


class DealToLeadConverter:
    """Converts deals back into leads."""

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
        self.workflows = workflows
        self.config = config or ConversionConfig()
        self.event_bus = event_bus

    def convert_deal_to_lead(
        self,
        deal_id: UUID,
        options: DealConversionOptions | None,
        acting_user_id: UUID
    ) -> DealConversionResult:
        """
        Convert a deal back into a lead.

        Returns:
            DealConversionResult; success=False with errors when validation
            blocks or anything unexpected fails (nothing is persisted then).
        """
        options = options or DealConversionOptions()

        with user_context(acting_user_id):
            validation = self.validator.validate(
                EntityType.DEAL, deal_id, EntityType.LEAD, acting_user_id
            )
            if not validation.can_proceed:
                return DealConversionResult(
                    success=False,
                    message="Conversion validation failed",
                    error_code=validation.errors[0].code if validation.errors else None,
                    errors=[e.message for e in validation.errors],
                    warnings=validation.warnings,
                )

            deal: Deal = validation.source_entity
            logger.info("Starting deal to lead conversion for deal %s", deal_id)

            try:
                with self.postgres.transaction():
                    result = self._convert(deal, options, acting_user_id)
            except AlreadyConvertedError as e:
                logger.warning("Deal %s lost the conversion race: %s", deal_id, e)
                return DealConversionResult(
                    success=False,
                    message="Deal was converted by another request",
                    error_code=ConversionIssueCode.ALREADY_CONVERTED,
                    errors=[str(e)],
                    warnings=validation.warnings,
                )
            except Exception as e:
                logger.exception("Deal to lead conversion failed for deal %s", deal_id)
                return DealConversionResult(
                    success=False,
                    message="Conversion failed due to unexpected error",
                    error_code=ConversionIssueCode.SYSTEM_ERROR,
                    errors=[str(e)],
                    warnings=validation.warnings,
                )

        result.warnings = validation.warnings
        if self.event_bus is not None:
            self.event_bus.publish(DealConvertedToLead.create(deal_id, result, acting_user_id))
        return result

    def _convert(
        self,
        deal: Deal,
        options: DealConversionOptions,
        acting_user_id: UUID
    ) -> DealConversionResult:
        failures: list[SideEffectFailure] = []

        project_type = self._resolve_lead_project_type(options)

        lead = self.leads.create(self._build_lead(deal, options, acting_user_id, failures))
        logger.info("Created lead %s from deal %s", lead.id, deal.id)

        plan = self.planner.plan(
            EntityType.DEAL,
            deal,
            EntityType.LEAD,
            override_project_type_id=project_type.id,
            override_step_id=options.target_wfm_step_id,
        )
        transition = self.executor.execute(
            plan, EntityType.LEAD, lead.id, acting_user_id, project_name=lead.name
        )
        if not transition.success:
            failures.append(SideEffectFailure(
                step="wfm_transition",
                message="; ".join(transition.errors) or transition.message,
            ))

        self.deals.mark_converted_to_lead(deal.id, lead.id, options.conversion_reason)

        deal_status_updated = bool(best_effort(
            self.postgres, "deal_status_update", failures, self._move_deal_to_converted_step, deal
        ))
        if not deal_status_updated and not any(f.step == "deal_status_update" for f in failures):
            failures.append(SideEffectFailure(
                step="deal_status_update",
                message=f'No "{self.config.converted_to_lead_status}" step in the deal\'s workflow',
            ))

        deal_archived = False
        if options.archive_deal:
            deal_archived = best_effort(
                self.postgres, "deal_archive", failures, self.deals.archive, deal.id
            ) is not None

        conversion_id = self.history.record(ConversionHistoryCreate(
            source_entity_type=EntityType.DEAL,
            source_entity_id=deal.id,
            target_entity_type=EntityType.LEAD,
            target_entity_id=lead.id,
            conversion_reason=options.conversion_reason,
            conversion_data={
                "dealStatusUpdated": deal_status_updated,
                "originalDealValue": str(deal.amount) if deal.amount is not None else None,
                "wfmTransitionExecuted": transition.success,
                "dealArchived": deal_archived,
                "notes": options.notes,
                "sideEffectFailures": [f.step for f in failures],
            },
            wfm_transition_plan=plan.model_dump(mode="json"),
            converted_by_user_id=acting_user_id,
        ))

        return DealConversionResult(
            success=True,
            conversion_id=conversion_id,
            message=f'Successfully converted deal "{deal.name}" to lead "{lead.name}"',
            lead_id=lead.id,
            deal_status_updated=deal_status_updated,
            wfm_project_id=transition.wfm_project_id,
            wfm_transition_plan=plan,
            side_effect_failures=failures,
        )

    def _resolve_lead_project_type(self, options: DealConversionOptions) -> ProjectType:
        """
        Project type for the new lead.

        Explicit option, else the configured lead project type, else any type
        named like "lead", else any project type at all.

        Raises:
            ConfigurationError: If no project type exists
        """
        if options.wfm_project_type_id is not None:
            project_type = self.workflows.get_project_type(options.wfm_project_type_id)
            if project_type is None:
                raise ConfigurationError(f"Project type {options.wfm_project_type_id} not found")
            return project_type

        name = self.config.project_type_mapping.get(EntityType.LEAD)
        if name:
            project_type = self.workflows.find_project_type_by_name(name)
            if project_type is not None:
                return project_type

        candidates = self.workflows.search_project_types("lead")
        if candidates:
            logger.warning(
                'Lead project type "%s" not found, using "%s"', name, candidates[0].name
            )
            return candidates[0]

        candidates = self.workflows.list_project_types()
        if candidates:
            logger.warning(
                "No lead project type found, falling back to %s", candidates[0].name
            )
            return candidates[0]

        raise ConfigurationError("No project type available for lead creation")

    def _build_lead(
        self,
        deal: Deal,
        options: DealConversionOptions,
        acting_user_id: UUID,
        failures: list[SideEffectFailure]
    ) -> LeadCreate:
        """Lead fields: caller overrides, then linked person/org, then the deal itself."""
        contact_name = contact_email = contact_phone = company_name = None

        if deal.person_id:
            person = best_effort(
                self.postgres, "person_lookup", failures, self.people.get_by_id, deal.person_id
            )
            if person is not None:
                contact_name = person.display_name or None
                contact_email = self._usable_email(person.email, failures)
                contact_phone = person.phone

        if deal.organization_id:
            organization = best_effort(
                self.postgres, "organization_lookup", failures,
                self.organizations.get_by_id, deal.organization_id
            )
            if organization is not None:
                company_name = organization.name

        overrides = options.lead_data
        if overrides is not None:
            contact_name = overrides.contact_name or contact_name
            contact_email = overrides.contact_email or contact_email
            contact_phone = overrides.contact_phone or contact_phone
            company_name = overrides.company_name or company_name

        return LeadCreate(
            name=(overrides and overrides.name) or deal.name,
            contact_name=contact_name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            company_name=company_name,
            estimated_value=(
                overrides.estimated_value
                if overrides and overrides.estimated_value is not None
                else deal.amount
            ),
            currency=deal.currency,
            estimated_close_date=(overrides and overrides.estimated_close_date) or deal.expected_close_date,
            source=(overrides and overrides.source) or "deal_conversion",
            description=(overrides and overrides.description) or f"Converted from deal: {deal.name}",
            assigned_to_user_id=deal.assigned_to_user_id or acting_user_id,
            person_id=deal.person_id,
            organization_id=deal.organization_id,
            original_deal_id=deal.id,
        )

    @staticmethod
    def _usable_email(email: str | None, failures: list[SideEffectFailure]) -> str | None:
        """A stored person email the lead will accept, or None."""
        if not email:
            return None
        try:
            return _email.validate_python(email)
        except ValidationError:
            logger.warning("Linked person email %r rejected for lead contact", email)
            failures.append(SideEffectFailure(
                step="person_lookup", message=f"Invalid contact email {email!r} dropped"
            ))
            return None

    def _move_deal_to_converted_step(self, deal: Deal) -> bool:
        """Move the deal's WFM project to its 'Converted to Lead' step. False if there is none."""
        if deal.wfm_project_id is None:
            return False

        project = self.workflows.get_project(deal.wfm_project_id)
        if project is None:
            return False

        step = self.workflows.find_marker_step(
            project.workflow_id,
            StepRole.CONVERTED_MARKER,
            self.config.converted_to_lead_status,
        )
        if step is None:
            return False

        self.workflows.move_to_step(project.id, step.id)
        return True
