"""Person service: lookup, creation and organization linking."""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.models import Person, PersonCreate
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class PersonService:
    """Service for person operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: PersonCreate) -> Person:
        """Create a new person owned by the current user."""
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO people (
                id, user_id, first_name, last_name, email, phone,
                organization_id, notes, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), user_id, data.first_name, data.last_name, data.email, data.phone,
                data.organization_id, data.notes, now, now
            )
        )[0]

        person = Person.model_validate(row)

        self.audit.log_change(
            entity_type="person",
            entity_id=person.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return person

    def get_by_id(self, person_id: UUID) -> Person | None:
        row = self.postgres.execute_single(
            "SELECT * FROM people WHERE id = %s",
            (person_id,)
        )
        return Person.model_validate(row) if row else None

    def find_by_email(self, email: str) -> Person | None:
        """Oldest person with this email (case-insensitive exact match)."""
        row = self.postgres.execute_single(
            """
            SELECT * FROM people
            WHERE lower(email) = lower(%s)
            ORDER BY created_at ASC
            LIMIT 1
            """,
            (email,)
        )
        return Person.model_validate(row) if row else None

    def link_organization(self, person_id: UUID, organization_id: UUID) -> Person:
        """
        Attach a person to an organization.

        Raises:
            ValueError: If person not found
        """
        current = self.get_by_id(person_id)
        if current is None:
            raise ValueError(f"Person {person_id} not found")
        if current.organization_id == organization_id:
            return current

        row = self.postgres.execute_returning(
            """
            UPDATE people SET organization_id = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (organization_id, now_utc(), person_id)
        )[0]

        self.audit.log_change(
            entity_type="person",
            entity_id=person_id,
            action=AuditAction.UPDATE,
            changes={
                "organization_id": {
                    "old": str(current.organization_id) if current.organization_id else None,
                    "new": str(organization_id),
                }
            }
        )

        return Person.model_validate(row)
