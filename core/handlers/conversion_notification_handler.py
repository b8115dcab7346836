"""
Handler for conversion events.

Publishes a compact JSON notification to the conversion_updates Valkey
channel so open clients can refresh the affected lead and deal.
"""

import logging
from typing import Callable

from core.events import BulkConversionCompleted, ConversionEvent

logger = logging.getLogger(__name__)

CONVERSION_UPDATES_CHANNEL = "conversion_updates"


def handle_conversion_notification(valkey) -> Callable:
    """
    Factory that returns a handler for LeadConvertedToDeal, DealConvertedToLead
    and BulkConversionCompleted.

    Args:
        valkey: ValkeyClient instance

    Returns:
        Handler callable
    """

    def handler(event: ConversionEvent | BulkConversionCompleted):
        message = {
            "event": event.__class__.__name__,
            "event_id": event.event_id,
            "occurred_at": event.occurred_at.isoformat(),
            "user_id": str(event.converted_by_user_id) if event.converted_by_user_id else None,
        }

        if isinstance(event, BulkConversionCompleted):
            summary = event.result.summary
            message["summary"] = summary.model_dump(mode="json")
        else:
            message["conversion_id"] = str(event.conversion_id) if event.conversion_id else None
            message["source_entity_id"] = str(event.source_entity_id)
            message["target_entity_id"] = str(event.target_entity_id)

        receivers = valkey.publish_json(CONVERSION_UPDATES_CHANNEL, message)
        logger.debug("Published %s to %d subscribers", message["event"], receivers)

    return handler


def register_conversion_notifications(event_bus, valkey) -> Callable:
    """Subscribe one notification handler to every conversion event. Returns the handler."""
    handler = handle_conversion_notification(valkey)
    for event_type in ("LeadConvertedToDeal", "DealConvertedToLead", "BulkConversionCompleted"):
        event_bus.subscribe(event_type, handler)
    return handler
