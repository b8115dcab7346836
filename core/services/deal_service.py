"""
Deal service: create/read/mark operations used by conversions.

All operations are automatically scoped to the current user via RLS.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.errors import AlreadyConvertedError
from core.models import Deal, DealCreate
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class DealService:
    """Service for deal operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: DealCreate) -> Deal:
        """
        Create a new deal owned by the current user.

        Args:
            data: Deal creation data

        Returns:
            Created deal
        """
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO deals (
                id, user_id, name, amount, currency, expected_close_date,
                person_id, organization_id, assigned_to_user_id,
                deal_specific_probability, created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), user_id, data.name, data.amount, data.currency, data.expected_close_date,
                data.person_id, data.organization_id, data.assigned_to_user_id,
                data.deal_specific_probability, now, now
            )
        )[0]

        deal = Deal.model_validate(row)

        self.audit.log_change(
            entity_type="deal",
            entity_id=deal.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return deal

    def get_by_id(self, deal_id: UUID) -> Deal | None:
        """Deal if found and visible to the current user, None otherwise."""
        row = self.postgres.execute_single(
            "SELECT * FROM deals WHERE id = %s",
            (deal_id,)
        )

        if row is None:
            return None

        return Deal.model_validate(row)

    def mark_converted_to_lead(self, deal_id: UUID, lead_id: UUID, reason: str | None) -> Deal:
        """
        Record the deal as converted back to a lead.

        Raises:
            AlreadyConvertedError: If another conversion claimed the deal first
        """
        rows = self.postgres.execute_returning(
            """
            UPDATE deals
            SET converted_to_lead_id = %s, conversion_reason = %s, updated_at = %s
            WHERE id = %s AND converted_to_lead_id IS NULL
            RETURNING *
            """,
            (lead_id, reason, now_utc(), deal_id)
        )

        if not rows:
            raise AlreadyConvertedError("deal", deal_id)

        self.audit.log_change(
            entity_type="deal",
            entity_id=deal_id,
            action=AuditAction.CONVERT,
            changes={
                "converted_to": {"type": "lead", "id": str(lead_id)},
                "conversion_reason": {"old": None, "new": reason},
            }
        )

        return Deal.model_validate(rows[0])

    def archive(self, deal_id: UUID) -> Deal:
        """
        Archive a deal.

        Raises:
            ValueError: If deal not found
        """
        now = now_utc()
        rows = self.postgres.execute_returning(
            """
            UPDATE deals SET archived_at = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now, now, deal_id)
        )
        if not rows:
            raise ValueError(f"Deal {deal_id} not found")

        self.audit.log_change(
            entity_type="deal",
            entity_id=deal_id,
            action=AuditAction.UPDATE,
            changes={"archived_at": {"old": None, "new": now.isoformat()}}
        )

        return Deal.model_validate(rows[0])

    def set_wfm_project(self, deal_id: UUID, wfm_project_id: UUID) -> None:
        """Point the deal at its workflow instance."""
        rows = self.postgres.execute_returning(
            """
            UPDATE deals SET wfm_project_id = %s, updated_at = %s
            WHERE id = %s
            RETURNING id
            """,
            (wfm_project_id, now_utc(), deal_id)
        )
        if not rows:
            raise ValueError(f"Deal {deal_id} not found")
