"""
WFM transition planner.

Works out where a converted entity should land in its new workflow:
target project type, workflow, and step. The step comes from an explicit
override (MANUAL), from the step-mapping heuristic (AUTO), or from the
workflow's initial step when nothing matched (DEFAULT).

Steps are matched by the administrator-assigned role in step metadata
first; display-name keywords are only consulted when no step carries the
role.
"""

import logging
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from core.config import ConversionConfig
from core.errors import ConfigurationError
from core.models import (
    Deal,
    EntityType,
    Lead,
    MappingStrategy,
    ProjectType,
    StepRole,
    TransitionPlan,
    WorkflowStep,
)
from core.services.workflow_service import WorkflowService
from utils.timezone import within_days

logger = logging.getLogger(__name__)


def find_step(
    steps: Iterable[WorkflowStep],
    roles: Iterable[StepRole],
    keywords: Iterable[str]
) -> WorkflowStep | None:
    """
    First step carrying one of roles, else first step whose name contains
    one of keywords (case-insensitive). Steps are searched in the given order.
    """
    steps = list(steps)
    roles = set(roles)
    keywords = tuple(keywords)

    for step in steps:
        if step.role in roles:
            return step
    if keywords:
        for step in steps:
            if step.name_contains(*keywords):
                return step
    return None


def initial_step(steps: list[WorkflowStep]) -> WorkflowStep | None:
    """The step flagged initial, else the lowest step_order."""
    if not steps:
        return None
    for step in steps:
        if step.is_initial_step:
            return step
    return min(steps, key=lambda s: s.step_order)


class TransitionPlanner:
    """Computes TransitionPlans. Never raises."""

    def __init__(self, workflows: WorkflowService, config: ConversionConfig | None = None):
        self.workflows = workflows
        self.config = config or ConversionConfig()

    def plan(
        self,
        source_type: EntityType,
        source_entity: Lead | Deal,
        target_type: EntityType,
        override_project_type_id: UUID | None = None,
        override_step_id: UUID | None = None
    ) -> TransitionPlan:
        """
        Plan the workflow transition for converting source_entity to target_type.

        Args:
            source_type: Type of the entity being converted
            source_entity: The lead or deal being converted
            target_type: Type being converted to
            override_project_type_id: Use this project type instead of the configured one
            override_step_id: Use this step verbatim (MANUAL)

        Returns:
            TransitionPlan. When lookups fail the plan is degraded
            (plan.is_degraded) and plan.errors says why.
        """
        reason = f"Converted from {source_type.value} to {target_type.value}"

        try:
            plan = TransitionPlan(transition_reason=reason)
            self._resolve_source(source_entity, plan)

            project_type = self._resolve_project_type(target_type, override_project_type_id)
            if project_type.default_workflow_id is None:
                raise ConfigurationError(
                    f"Project type '{project_type.name}' has no associated workflow"
                )

            steps = self.workflows.list_steps(project_type.default_workflow_id)
            fallback = initial_step(steps)
            if fallback is None:
                raise ConfigurationError(
                    f"Workflow {project_type.default_workflow_id} has no steps"
                )

            plan.target_project_type_id = project_type.id
            plan.target_workflow_id = project_type.default_workflow_id
            plan.target_initial_step_id = fallback.id

            if override_step_id is not None:
                plan.target_step_id = override_step_id
                plan.mapping_strategy = MappingStrategy.MANUAL
                return plan

            mapped = self._map_step(source_type, source_entity, target_type, steps)
            if mapped is not None:
                plan.target_step_id = mapped.id
                plan.mapping_strategy = MappingStrategy.AUTO
            else:
                plan.target_step_id = fallback.id
                plan.mapping_strategy = MappingStrategy.DEFAULT

            logger.debug(
                "Planned %s: step %s (%s)",
                reason, plan.target_step_id, plan.mapping_strategy.value
            )
            return plan

        except Exception as e:
            logger.warning("WFM transition planning degraded (%s): %s", reason, e)
            return TransitionPlan(
                target_project_type_id=override_project_type_id,
                transition_reason=reason,
                mapping_strategy=MappingStrategy.DEFAULT,
                errors=[str(e)],
            )

    def _resolve_source(self, source_entity: Lead | Deal, plan: TransitionPlan) -> None:
        """Fill the source_* fields from the entity's own WFM project, if it has one."""
        if source_entity.wfm_project_id is None:
            return

        project = self.workflows.get_project(source_entity.wfm_project_id)
        if project is None:
            return

        plan.source_project_type_id = project.project_type_id
        plan.source_workflow_id = project.workflow_id
        plan.source_current_step_id = project.current_step_id

        converted = find_step(
            self.workflows.list_steps(project.workflow_id),
            roles=[StepRole.CONVERTED_MARKER],
            keywords=["converted"],
        )
        if converted is not None:
            plan.source_converted_step_id = converted.id

    def _resolve_project_type(
        self,
        target_type: EntityType,
        override_project_type_id: UUID | None
    ) -> ProjectType:
        if override_project_type_id is not None:
            project_type = self.workflows.get_project_type(override_project_type_id)
            if project_type is None:
                raise ConfigurationError(f"Project type {override_project_type_id} not found")
            return project_type

        name = self.config.project_type_mapping.get(target_type)
        if not name:
            raise ConfigurationError(f"No project type configured for {target_type.value}")

        project_type = self.workflows.find_project_type_by_name(name)
        if project_type is None:
            raise ConfigurationError(f'Default project type "{name}" not found')
        return project_type

    def _map_step(
        self,
        source_type: EntityType,
        source_entity: Lead | Deal,
        target_type: EntityType,
        steps: list[WorkflowStep]
    ) -> WorkflowStep | None:
        """Heuristic step choice from the source entity's attributes. None if nothing fits."""
        if source_type == EntityType.LEAD and target_type == EntityType.DEAL:
            return self._map_lead_to_deal(source_entity, steps)
        if source_type == EntityType.DEAL and target_type == EntityType.LEAD:
            return self._map_deal_to_lead(source_entity, steps)
        return None

    def _map_lead_to_deal(self, lead: Lead, steps: list[WorkflowStep]) -> WorkflowStep | None:
        score = lead.lead_score or 0
        had_demo = "demo" in (lead.name or "").lower()

        if score >= self.config.advanced_lead_score or had_demo:
            return find_step(
                steps,
                roles=[StepRole.SCOPING, StepRole.PROPOSAL],
                keywords=["scoping", "proposal"],
            )
        if score >= self.config.qualified_lead_score and lead.has_estimated_value:
            return find_step(steps, roles=[StepRole.QUALIFIED], keywords=["qualified"])
        return None

    def _map_deal_to_lead(self, deal: Deal, steps: list[WorkflowStep]) -> WorkflowStep | None:
        amount = deal.amount or Decimal("0")
        recently_active = within_days(deal.last_activity_at, self.config.recent_activity_days)

        if amount > self.config.hot_deal_amount and recently_active:
            return find_step(
                steps,
                roles=[StepRole.HOT, StepRole.QUALIFIED],
                keywords=["hot", "qualified"],
            )
        if amount > self.config.qualified_deal_amount:
            return find_step(steps, roles=[StepRole.QUALIFIED], keywords=["qualified"])
        return None
