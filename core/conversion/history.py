"""
Conversion history.

Append-only record of every conversion that created a target entity.
Entries are written once and never updated or deleted; they stay queryable
from either the source or the target side.
"""

import logging
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.errors import PersistenceError
from core.models import ConversionHistoryCreate, ConversionHistoryEntry, EntityType
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ConversionHistoryRecorder:
    """Writes and reads conversion_history."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def record(self, entry: ConversionHistoryCreate) -> UUID:
        """
        Append a history entry.

        Returns:
            ID of the new entry

        Raises:
            PersistenceError: If the row could not be written
        """
        now = now_utc()
        try:
            rows = self.postgres.execute_returning(
                """
                INSERT INTO conversion_history (
                    id, conversion_type,
                    source_entity_type, source_entity_id,
                    target_entity_type, target_entity_id,
                    conversion_reason, conversion_data, wfm_transition_plan,
                    converted_by_user_id, converted_at, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    uuid4(), entry.conversion_type.value,
                    entry.source_entity_type.value, entry.source_entity_id,
                    entry.target_entity_type.value, entry.target_entity_id,
                    entry.conversion_reason,
                    Json(entry.conversion_data),
                    Json(entry.wfm_transition_plan) if entry.wfm_transition_plan is not None else None,
                    entry.converted_by_user_id, now, now
                )
            )
        except Exception as e:
            raise PersistenceError(f"Failed to record conversion history: {e}") from e

        if not rows:
            raise PersistenceError("Failed to record conversion history: no row returned")

        history_id = rows[0]["id"]
        logger.info(
            "Recorded %s %s -> %s (history %s)",
            entry.conversion_type.value, entry.source_entity_id, entry.target_entity_id, history_id
        )
        return history_id

    def query(self, entity_type: EntityType, entity_id: UUID) -> list[ConversionHistoryEntry]:
        """
        Entries where the entity is source or target, newest first.

        Returns [] on any read failure.
        """
        try:
            rows = self.postgres.execute(
                """
                SELECT * FROM conversion_history
                WHERE (source_entity_type = %s AND source_entity_id = %s)
                   OR (target_entity_type = %s AND target_entity_id = %s)
                ORDER BY converted_at DESC, created_at DESC
                """,
                (entity_type.value, entity_id, entity_type.value, entity_id)
            )
            return [ConversionHistoryEntry.model_validate(row) for row in rows]
        except Exception:
            logger.exception("Failed to read conversion history for %s %s", entity_type.value, entity_id)
            return []

    def get_by_id(self, history_id: UUID) -> ConversionHistoryEntry | None:
        row = self.postgres.execute_single(
            "SELECT * FROM conversion_history WHERE id = %s",
            (history_id,)
        )
        return ConversionHistoryEntry.model_validate(row) if row else None
