"""
Lead/deal conversion engine.

build_conversion_engine() wires the validator, planner, executor, history
recorder and both converters over one PostgresClient.
"""

from dataclasses import dataclass

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import ConversionConfig
from core.conversion.backward import DealToLeadConverter
from core.conversion.bulk import BulkConversionCoordinator
from core.conversion.executor import TransitionExecutor
from core.conversion.forward import LeadToDealConverter
from core.conversion.history import ConversionHistoryRecorder
from core.conversion.planner import TransitionPlanner
from core.conversion.validation import ConversionValidator
from core.event_bus import EventBus
from core.services.activity_service import ActivityService
from core.services.deal_service import DealService
from core.services.lead_service import LeadService
from core.services.organization_service import OrganizationService
from core.services.person_service import PersonService
from core.services.workflow_service import WorkflowService


@dataclass
class ConversionEngine:
    """Entry points used by the API layer."""
    validator: ConversionValidator
    planner: TransitionPlanner
    history: ConversionHistoryRecorder
    forward: LeadToDealConverter
    backward: DealToLeadConverter
    bulk: BulkConversionCoordinator


def build_conversion_engine(
    postgres: PostgresClient,
    config: ConversionConfig | None = None,
    event_bus: EventBus | None = None
) -> ConversionEngine:
    config = config or ConversionConfig()
    audit = AuditLogger(postgres)

    leads = LeadService(postgres, audit)
    deals = DealService(postgres, audit)
    people = PersonService(postgres, audit)
    organizations = OrganizationService(postgres, audit)
    activities = ActivityService(postgres, audit)
    workflows = WorkflowService(postgres, audit)

    validator = ConversionValidator(leads, deals, workflows, config)
    planner = TransitionPlanner(workflows, config)
    executor = TransitionExecutor(postgres, workflows, leads, deals)
    history = ConversionHistoryRecorder(postgres)

    forward = LeadToDealConverter(
        postgres, validator, planner, executor, history,
        leads, deals, people, organizations, activities, workflows,
        config=config, event_bus=event_bus,
    )
    backward = DealToLeadConverter(
        postgres, validator, planner, executor, history,
        leads, deals, people, organizations, workflows,
        config=config, event_bus=event_bus,
    )
    bulk = BulkConversionCoordinator(forward, leads, event_bus=event_bus)

    return ConversionEngine(
        validator=validator,
        planner=planner,
        history=history,
        forward=forward,
        backward=backward,
        bulk=bulk,
    )


__all__ = [
    "ConversionEngine",
    "build_conversion_engine",
    "ConversionValidator",
    "TransitionPlanner",
    "TransitionExecutor",
    "ConversionHistoryRecorder",
    "LeadToDealConverter",
    "DealToLeadConverter",
    "BulkConversionCoordinator",
]
