"""Organization service: lookup by name and creation."""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.models import Organization, OrganizationCreate
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class OrganizationService:
    """Service for organization operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: OrganizationCreate) -> Organization:
        """Create a new organization owned by the current user."""
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO organizations (id, user_id, name, address, notes, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (uuid4(), user_id, data.name, data.address, data.notes, now, now)
        )[0]

        organization = Organization.model_validate(row)

        self.audit.log_change(
            entity_type="organization",
            entity_id=organization.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return organization

    def get_by_id(self, organization_id: UUID) -> Organization | None:
        row = self.postgres.execute_single(
            "SELECT * FROM organizations WHERE id = %s",
            (organization_id,)
        )
        return Organization.model_validate(row) if row else None

    def find_by_name(self, name: str) -> Organization | None:
        """Oldest organization with exactly this name."""
        row = self.postgres.execute_single(
            """
            SELECT * FROM organizations
            WHERE name = %s
            ORDER BY created_at ASC
            LIMIT 1
            """,
            (name,)
        )
        return Organization.model_validate(row) if row else None
