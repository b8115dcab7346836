"""
Workflow (WFM) service.

Read access to project types and workflow steps, plus creation and movement
of the WFM projects that carry a lead or deal through its workflow.

Project types, workflows, steps and statuses are shared configuration;
wfm_projects rows are attributed to the acting user.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.models import ProjectType, StepRole, WFMProject, WFMProjectCreate, WorkflowStep
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Step rows carry their status name as the display name
_STEP_SELECT = """
    SELECT ws.id, ws.workflow_id, ws.status_id, COALESCE(s.name, '') AS name,
           ws.step_order, ws.is_initial_step, ws.is_final_step, ws.metadata
    FROM workflow_steps ws
    LEFT JOIN statuses s ON s.id = ws.status_id
"""


class WorkflowService:
    """Service for workflow configuration and WFM project operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    # =========================================================================
    # PROJECT TYPES
    # =========================================================================

    def get_project_type(self, project_type_id: UUID) -> ProjectType | None:
        row = self.postgres.execute_single(
            "SELECT * FROM project_types WHERE id = %s",
            (project_type_id,)
        )
        return ProjectType.model_validate(row) if row else None

    def find_project_type_by_name(self, name: str) -> ProjectType | None:
        """Active project type with exactly this name."""
        row = self.postgres.execute_single(
            """
            SELECT * FROM project_types
            WHERE name = %s AND is_archived = false
            LIMIT 1
            """,
            (name,)
        )
        return ProjectType.model_validate(row) if row else None

    def search_project_types(self, fragment: str) -> list[ProjectType]:
        """Active project types whose name contains fragment, case-insensitive."""
        rows = self.postgres.execute(
            """
            SELECT * FROM project_types
            WHERE name ILIKE %s AND is_archived = false
            ORDER BY name
            """,
            (f"%{fragment}%",)
        )
        return [ProjectType.model_validate(row) for row in rows]

    def list_project_types(self) -> list[ProjectType]:
        rows = self.postgres.execute(
            "SELECT * FROM project_types WHERE is_archived = false ORDER BY name"
        )
        return [ProjectType.model_validate(row) for row in rows]

    # =========================================================================
    # STEPS
    # =========================================================================

    def get_step(self, step_id: UUID) -> WorkflowStep | None:
        row = self.postgres.execute_single(
            _STEP_SELECT + " WHERE ws.id = %s",
            (step_id,)
        )
        return WorkflowStep.model_validate(row) if row else None

    def list_steps(self, workflow_id: UUID) -> list[WorkflowStep]:
        """All steps of a workflow in step_order."""
        rows = self.postgres.execute(
            _STEP_SELECT + " WHERE ws.workflow_id = %s ORDER BY ws.step_order ASC",
            (workflow_id,)
        )
        return [WorkflowStep.model_validate(row) for row in rows]

    def find_marker_step(
        self,
        workflow_id: UUID,
        role: StepRole,
        status_name: str
    ) -> WorkflowStep | None:
        """
        Step of a workflow that plays the given role.

        The role in step metadata wins; otherwise the first step (by order)
        whose status name equals status_name case-insensitively.
        """
        steps = self.list_steps(workflow_id)
        for step in steps:
            if step.role == role:
                return step
        wanted = status_name.lower()
        for step in steps:
            if step.name.lower() == wanted:
                return step
        return None

    # =========================================================================
    # PROJECTS
    # =========================================================================

    def get_project(self, project_id: UUID) -> WFMProject | None:
        row = self.postgres.execute_single(
            "SELECT * FROM wfm_projects WHERE id = %s",
            (project_id,)
        )
        return WFMProject.model_validate(row) if row else None

    def create_project(self, data: WFMProjectCreate) -> WFMProject:
        """
        Create a WFM project positioned at data.current_step_id.

        Raises:
            ValueError: If the step does not belong to the workflow
        """
        step = self.get_step(data.current_step_id)
        if step is None or step.workflow_id != data.workflow_id:
            raise ValueError(
                f"Step {data.current_step_id} does not belong to workflow {data.workflow_id}"
            )

        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO wfm_projects (
                id, name, description, project_type_id, workflow_id, current_step_id,
                created_by_user_id, updated_by_user_id, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), data.name, data.description, data.project_type_id, data.workflow_id,
                data.current_step_id, user_id, user_id, now, now
            )
        )[0]

        project = WFMProject.model_validate(row)

        self.audit.log_change(
            entity_type="wfm_project",
            entity_id=project.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json")}
        )

        return project

    def move_to_step(self, project_id: UUID, step_id: UUID) -> WFMProject:
        """
        Move a WFM project to another step of its own workflow.

        Raises:
            ValueError: If project not found or the step is outside its workflow
        """
        project = self.get_project(project_id)
        if project is None:
            raise ValueError(f"WFM project {project_id} not found")

        step = self.get_step(step_id)
        if step is None or step.workflow_id != project.workflow_id:
            raise ValueError(
                f"Step {step_id} does not belong to workflow {project.workflow_id}"
            )

        if project.current_step_id == step_id:
            return project

        row = self.postgres.execute_returning(
            """
            UPDATE wfm_projects
            SET current_step_id = %s, updated_by_user_id = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (step_id, get_current_user_id(), now_utc(), project_id)
        )[0]

        self.audit.log_change(
            entity_type="wfm_project",
            entity_id=project_id,
            action=AuditAction.UPDATE,
            changes={
                "current_step_id": {
                    "old": str(project.current_step_id) if project.current_step_id else None,
                    "new": str(step_id),
                }
            }
        )

        logger.info("WFM project %s moved to step %s (%s)", project_id, step_id, step.name)
        return WFMProject.model_validate(row)
