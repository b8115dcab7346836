"""
Activity service for conversion bookkeeping.

Creates audit activities and re-points a lead's activities at the deal
it was converted into.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.models import Activity, ActivityCreate
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ActivityService:
    """Service for activity operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: ActivityCreate) -> Activity:
        """Create an activity owned by the current user."""
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO activities (
                id, user_id, subject, type, notes,
                lead_id, deal_id, person_id, organization_id,
                assigned_to_user_id, due_date, is_done, is_system_activity,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), user_id, data.subject, data.type.value, data.notes,
                data.lead_id, data.deal_id, data.person_id, data.organization_id,
                data.assigned_to_user_id, data.due_date, data.is_done, data.is_system_activity,
                now, now
            )
        )[0]

        activity = Activity.model_validate(row)

        self.audit.log_change(
            entity_type="activity",
            entity_id=activity.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return activity

    def move_lead_activities_to_deal(self, lead_id: UUID, deal_id: UUID, note: str) -> int:
        """
        Re-point every activity of a lead at a deal.

        The note is appended to each activity's existing notes.

        Returns:
            Number of activities moved
        """
        rows = self.postgres.execute_returning(
            """
            UPDATE activities
            SET deal_id = %s,
                lead_id = NULL,
                notes = CASE
                    WHEN notes IS NULL OR notes = '' THEN %s
                    ELSE notes || E'\\n\\n' || %s
                END,
                updated_at = %s
            WHERE lead_id = %s
            RETURNING id
            """,
            (deal_id, note, note, now_utc(), lead_id)
        )

        for row in rows:
            self.audit.log_change(
                entity_type="activity",
                entity_id=row["id"],
                action=AuditAction.UPDATE,
                changes={
                    "lead_id": {"old": str(lead_id), "new": None},
                    "deal_id": {"old": None, "new": str(deal_id)},
                }
            )

        logger.info("Moved %d activities from lead %s to deal %s", len(rows), lead_id, deal_id)
        return len(rows)
