"""
Domain events for lead/deal conversions.

Immutable event objects published once a conversion has committed. The
publisher does not know who is listening; handlers (notifications, cache
invalidation) subscribe by event class name.

Event Categories:
- ConversionEvent: a single lead->deal or deal->lead conversion committed
- BulkConversionCompleted: a bulk run finished (per-item outcomes inside)

Events carry the result objects so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class CRMEvent:
    """Base class for all CRM domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# CONVERSION EVENTS
# =============================================================================


@dataclass(frozen=True)
class ConversionEvent(CRMEvent):
    """A conversion committed."""
    conversion_id: UUID | None = None
    source_entity_id: UUID | None = None
    target_entity_id: UUID | None = None
    converted_by_user_id: UUID | None = None
    result: Any = None  # LeadConversionResult / DealConversionResult


@dataclass(frozen=True)
class LeadConvertedToDeal(ConversionEvent):
    """A lead became a deal."""

    @classmethod
    def create(cls, lead_id: UUID, result: Any, user_id: UUID) -> "LeadConvertedToDeal":
        return cls(
            conversion_id=result.conversion_id,
            source_entity_id=lead_id,
            target_entity_id=result.deal_id,
            converted_by_user_id=user_id,
            result=result,
        )


@dataclass(frozen=True)
class DealConvertedToLead(ConversionEvent):
    """A deal went back to being a lead."""

    @classmethod
    def create(cls, deal_id: UUID, result: Any, user_id: UUID) -> "DealConvertedToLead":
        return cls(
            conversion_id=result.conversion_id,
            source_entity_id=deal_id,
            target_entity_id=result.lead_id,
            converted_by_user_id=user_id,
            result=result,
        )


@dataclass(frozen=True)
class BulkConversionCompleted(CRMEvent):
    """A bulk lead conversion run finished."""
    converted_by_user_id: UUID | None = None
    result: Any = None  # BulkConversionResult

    @classmethod
    def create(cls, result: Any, user_id: UUID) -> "BulkConversionCompleted":
        return cls(converted_by_user_id=user_id, result=result)
