"""
Field-level audit trail for CRM writes.

Each service that mutates a lead, deal, person, organization, activity or
WFM project appends one row to audit_log. Rows are never updated and carry
the acting user. conversion_history holds the business-facing record of a
conversion; audit_log keeps the per-entity detail beneath it.

audit_log has no RLS policy, so entries stay visible to administrators
regardless of the user context.
"""

from enum import Enum
from uuid import UUID, uuid4
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.user_context import get_current_user_id
from utils.timezone import now_utc


class AuditAction(Enum):
    """Kind of write being recorded."""

    CREATE = "create"
    UPDATE = "update"
    CONVERT = "convert"


class AuditLogger:
    """
    Appends audit_log rows on behalf of the services.

    Payloads should come from model_dump(mode="json") so UUIDs, decimals
    and datetimes are already JSON strings.
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None
    ) -> None:
        """
        Record one write against an entity.

        Payload shape per action:
        - CREATE: {"created": {...}}
        - UPDATE: {"<field>": {"old": ..., "new": ...}}
        - CONVERT: {"converted_to": {"type": ..., "id": ...}}

        The acting user defaults to the one in the request context.
        """
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                user_id or get_current_user_id(),
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )
