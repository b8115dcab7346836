"""
WFM transition executor.

Materializes a TransitionPlan: creates the WFM project for the converted
entity and points the entity at it. Failures are returned, never raised,
so the caller can keep the entity it already created.
"""

import logging
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.models import EntityType, TransitionPlan, TransitionResult, WFMProjectCreate
from core.services.deal_service import DealService
from core.services.lead_service import LeadService
from core.services.workflow_service import WorkflowService
from utils.user_context import user_context

logger = logging.getLogger(__name__)


class TransitionExecutor:
    """Creates WFM projects from plans."""

    def __init__(
        self,
        postgres: PostgresClient,
        workflows: WorkflowService,
        leads: LeadService,
        deals: DealService
    ):
        self.postgres = postgres
        self.workflows = workflows
        self.leads = leads
        self.deals = deals

    def execute(
        self,
        plan: TransitionPlan,
        target_entity_type: EntityType,
        target_entity_id: UUID,
        acting_user_id: UUID,
        project_name: str | None = None
    ) -> TransitionResult:
        """
        Create a WFM project at plan.effective_step_id and bind it to the target entity.

        Project creation and the entity link share one savepoint: either both
        land or neither does.
        """
        if plan.is_degraded:
            return TransitionResult(
                success=False,
                message="Transition plan is incomplete",
                errors=plan.errors or ["No target project type or workflow resolved"],
            )

        step_id = plan.effective_step_id
        if step_id is None:
            return TransitionResult(
                success=False,
                message="Transition plan has no target step",
                errors=["No target step resolved"],
            )

        try:
            with user_context(acting_user_id), self.postgres.transaction():
                project = self.workflows.create_project(WFMProjectCreate(
                    name=project_name or f"{target_entity_type.value.capitalize()} {target_entity_id}",
                    description=f"WFM project created from conversion: {plan.transition_reason}",
                    project_type_id=plan.target_project_type_id,
                    workflow_id=plan.target_workflow_id,
                    current_step_id=step_id,
                ))

                if target_entity_type == EntityType.DEAL:
                    self.deals.set_wfm_project(target_entity_id, project.id)
                else:
                    self.leads.set_wfm_project(target_entity_id, project.id)

        except Exception as e:
            logger.warning(
                "WFM transition for %s %s failed: %s",
                target_entity_type.value, target_entity_id, e
            )
            return TransitionResult(
                success=False,
                message="WFM transition failed",
                errors=[str(e)],
            )

        logger.info(
            "WFM project %s created for %s %s at step %s",
            project.id, target_entity_type.value, target_entity_id, step_id
        )
        return TransitionResult(
            success=True,
            message="WFM transition completed successfully",
            wfm_project_id=project.id,
            current_step_id=step_id,
        )
