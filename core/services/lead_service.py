"""
Lead service: the create/read/mark operations the conversion engine needs.

All operations are automatically scoped to the current user via RLS.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.errors import AlreadyConvertedError
from core.models import Lead, LeadCreate
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class LeadService:
    """Service for lead operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: LeadCreate) -> Lead:
        """
        Create a new lead owned by the current user.

        Args:
            data: Lead creation data

        Returns:
            Created lead
        """
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO leads (
                id, user_id, name, contact_name, contact_email, contact_phone,
                company_name, estimated_value, currency, estimated_close_date,
                lead_score, source, description, assigned_to_user_id,
                person_id, organization_id, original_deal_id,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), user_id, data.name, data.contact_name, data.contact_email, data.contact_phone,
                data.company_name, data.estimated_value, data.currency, data.estimated_close_date,
                data.lead_score, data.source, data.description, data.assigned_to_user_id,
                data.person_id, data.organization_id, data.original_deal_id,
                now, now
            )
        )[0]

        lead = Lead.model_validate(row)

        self.audit.log_change(
            entity_type="lead",
            entity_id=lead.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return lead

    def get_by_id(self, lead_id: UUID) -> Lead | None:
        """Lead if found and visible to the current user, None otherwise."""
        row = self.postgres.execute_single(
            "SELECT * FROM leads WHERE id = %s",
            (lead_id,)
        )

        if row is None:
            return None

        return Lead.model_validate(row)

    def find_converted_to_deal(self, deal_id: UUID) -> Lead | None:
        """The lead that was converted into the given deal, if any."""
        row = self.postgres.execute_single(
            """
            SELECT * FROM leads
            WHERE converted_to_deal_id = %s
            ORDER BY converted_at DESC
            LIMIT 1
            """,
            (deal_id,)
        )
        return Lead.model_validate(row) if row else None

    def mark_converted(
        self,
        lead_id: UUID,
        deal_id: UUID,
        person_id: UUID | None,
        organization_id: UUID | None,
        converted_by_user_id: UUID,
    ) -> Lead:
        """
        Record the lead as converted.

        Compare-and-swap on converted_at IS NULL: only one conversion can
        ever claim a lead, even if two requests passed validation.

        Raises:
            AlreadyConvertedError: If the lead was claimed first
        """
        now = now_utc()
        rows = self.postgres.execute_returning(
            """
            UPDATE leads
            SET converted_at = %s,
                converted_to_deal_id = %s,
                converted_to_person_id = %s,
                converted_to_organization_id = %s,
                converted_by_user_id = %s,
                updated_at = %s
            WHERE id = %s AND converted_at IS NULL
            RETURNING *
            """,
            (now, deal_id, person_id, organization_id, converted_by_user_id, now, lead_id)
        )

        if not rows:
            raise AlreadyConvertedError("lead", lead_id)

        lead = Lead.model_validate(rows[0])

        self.audit.log_change(
            entity_type="lead",
            entity_id=lead_id,
            action=AuditAction.CONVERT,
            changes={
                "converted_to": {"type": "deal", "id": str(deal_id)},
                "converted_at": {"old": None, "new": now.isoformat()},
            }
        )

        return lead

    def set_wfm_project(self, lead_id: UUID, wfm_project_id: UUID) -> None:
        """Point the lead at its workflow instance."""
        rows = self.postgres.execute_returning(
            """
            UPDATE leads SET wfm_project_id = %s, updated_at = %s
            WHERE id = %s
            RETURNING id
            """,
            (wfm_project_id, now_utc(), lead_id)
        )
        if not rows:
            raise ValueError(f"Lead {lead_id} not found")
