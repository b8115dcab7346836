"""
Bulk lead conversion.

Each lead is converted on its own, in its own transaction. Delivery is
at-least-once per item with no batch atomicity: a failing lead never
undoes another lead's conversion and never stops the run.
"""

import logging
from uuid import UUID

from core.conversion.forward import LeadToDealConverter
from core.event_bus import EventBus
from core.events import BulkConversionCompleted
from core.models import (
    BulkConversionItem,
    BulkConversionResult,
    BulkConversionSummary,
    EntityRef,
    LeadConversionOptions,
)
from core.services.lead_service import LeadService
from utils.user_context import user_context

logger = logging.getLogger(__name__)


class BulkConversionCoordinator:
    """Sequences single lead conversions and aggregates their outcomes."""

    def __init__(
        self,
        converter: LeadToDealConverter,
        leads: LeadService,
        event_bus: EventBus | None = None
    ):
        self.converter = converter
        self.leads = leads
        self.event_bus = event_bus

    def bulk_convert_leads(
        self,
        lead_ids: list[UUID],
        default_options: LeadConversionOptions | None,
        per_lead_overrides: dict[UUID, LeadConversionOptions] | None,
        acting_user_id: UUID
    ) -> BulkConversionResult:
        """
        Convert every lead in lead_ids, in order.

        Args:
            lead_ids: Leads to convert. Duplicates are processed once.
            default_options: Options applied to every lead
            per_lead_overrides: Per-lead options; fields set here replace the defaults
            acting_user_id: User performing the conversions

        Returns:
            BulkConversionResult with one item per distinct lead
        """
        defaults = default_options or LeadConversionOptions()
        overrides = per_lead_overrides or {}
        items: list[BulkConversionItem] = []

        with user_context(acting_user_id):
            for lead_id in dict.fromkeys(lead_ids):
                items.append(self._convert_one(
                    lead_id, defaults.merged_with(overrides.get(lead_id)), acting_user_id
                ))

        success_count = sum(1 for item in items if item.success)
        result = BulkConversionResult(
            summary=BulkConversionSummary(
                total_processed=len(items),
                success_count=success_count,
                error_count=len(items) - success_count,
            ),
            results=items,
        )

        logger.info(
            "Bulk conversion finished: %d processed, %d converted, %d failed",
            result.summary.total_processed,
            result.summary.success_count,
            result.summary.error_count,
        )

        if self.event_bus is not None:
            self.event_bus.publish(BulkConversionCompleted.create(result, acting_user_id))
        return result

    def _convert_one(
        self,
        lead_id: UUID,
        options: LeadConversionOptions,
        acting_user_id: UUID
    ) -> BulkConversionItem:
        source = EntityRef(id=lead_id, name=self._lead_name(lead_id))

        try:
            outcome = self.converter.convert_lead_to_deal(lead_id, options, acting_user_id)
        except Exception as e:
            logger.exception("Bulk conversion of lead %s raised", lead_id)
            return BulkConversionItem(source_entity=source, success=False, error=str(e))

        if not outcome.success:
            return BulkConversionItem(
                source_entity=source,
                success=False,
                error="; ".join(outcome.errors) or outcome.message,
            )

        deal_name = options.deal_data.name if options.deal_data and options.deal_data.name else source.name
        return BulkConversionItem(
            source_entity=source,
            target_entity=EntityRef(id=outcome.deal_id, name=deal_name),
            success=True,
        )

    def _lead_name(self, lead_id: UUID) -> str | None:
        try:
            lead = self.leads.get_by_id(lead_id)
        except Exception:
            logger.warning("Could not read lead %s for bulk result", lead_id, exc_info=True)
            return None
        return lead.name if lead else None
