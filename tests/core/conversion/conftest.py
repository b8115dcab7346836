"""
Conversion engine fixtures - in-memory services over a transactional store.

The store is snapshotted on every transaction() entry and restored when the
block raises, so rollback and savepoint behavior of the orchestrators can be
asserted without a database. Fakes mirror the public signatures of the real
services.
"""

import copy
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest

from core.config import ConversionConfig
from core.conversion.backward import DealToLeadConverter
from core.conversion.bulk import BulkConversionCoordinator
from core.conversion.executor import TransitionExecutor
from core.conversion.forward import LeadToDealConverter
from core.conversion.planner import TransitionPlanner
from core.conversion.validation import ConversionValidator
from core.errors import AlreadyConvertedError
from core.event_bus import EventBus
from core.models import (
    Activity,
    ActivityCreate,
    ConversionHistoryCreate,
    ConversionHistoryEntry,
    Deal,
    DealCreate,
    EntityType,
    Lead,
    LeadCreate,
    Organization,
    OrganizationCreate,
    Person,
    PersonCreate,
    ProjectType,
    WFMProject,
    WFMProjectCreate,
    WorkflowStep,
)
from core.services.workflow_service import WorkflowService
from utils.timezone import now_utc
from utils.user_context import get_current_user_id


# =============================================================================
# TRANSACTIONAL STORE
# =============================================================================


class InMemoryDatabase:
    """Named tables of id -> model. Fakes always go through .tables."""

    TABLES = (
        "leads", "deals", "people", "organizations", "activities",
        "project_types", "steps", "projects", "history",
    )

    def __init__(self):
        self.tables: dict[str, dict[UUID, Any]] = {name: {} for name in self.TABLES}
        self.commits = 0
        self.rollbacks = 0

    def snapshot(self) -> dict[str, dict[UUID, Any]]:
        return copy.deepcopy(self.tables)

    def restore(self, snapshot: dict[str, dict[UUID, Any]]) -> None:
        self.tables = snapshot

    def count(self, table: str) -> int:
        return len(self.tables[table])


class InMemoryPostgres:
    """transaction() with commit/rollback/savepoint semantics over InMemoryDatabase."""

    def __init__(self, db: InMemoryDatabase):
        self.db = db
        self.depth = 0

    def in_transaction(self) -> bool:
        return self.depth > 0

    @contextmanager
    def transaction(self):
        snapshot = self.db.snapshot()
        self.depth += 1
        try:
            yield
        except Exception:
            self.db.restore(snapshot)
            self.db.rollbacks += 1
            raise
        else:
            if self.depth == 1:
                self.db.commits += 1
        finally:
            self.depth -= 1


def _update(db: InMemoryDatabase, table: str, entity_id: UUID, **changes):
    current = db.tables[table][entity_id]
    updated = current.model_copy(update={**changes, "updated_at": now_utc()})
    db.tables[table][entity_id] = updated
    return updated


# =============================================================================
# FAKE SERVICES
# =============================================================================


class InMemoryLeadService:
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, data: LeadCreate) -> Lead:
        now = now_utc()
        lead = Lead(
            id=uuid4(), user_id=get_current_user_id(), created_at=now, updated_at=now,
            **data.model_dump()
        )
        self.db.tables["leads"][lead.id] = lead
        return lead

    def get_by_id(self, lead_id: UUID) -> Lead | None:
        return self.db.tables["leads"].get(lead_id)

    def find_converted_to_deal(self, deal_id: UUID) -> Lead | None:
        for lead in self.db.tables["leads"].values():
            if lead.converted_to_deal_id == deal_id:
                return lead
        return None

    def mark_converted(self, lead_id, deal_id, person_id, organization_id, converted_by_user_id) -> Lead:
        lead = self.db.tables["leads"].get(lead_id)
        if lead is None or lead.converted_at is not None:
            raise AlreadyConvertedError("lead", lead_id)
        return _update(
            self.db, "leads", lead_id,
            converted_at=now_utc(),
            converted_to_deal_id=deal_id,
            converted_to_person_id=person_id,
            converted_to_organization_id=organization_id,
            converted_by_user_id=converted_by_user_id,
        )

    def set_wfm_project(self, lead_id: UUID, wfm_project_id: UUID) -> None:
        if lead_id not in self.db.tables["leads"]:
            raise ValueError(f"Lead {lead_id} not found")
        _update(self.db, "leads", lead_id, wfm_project_id=wfm_project_id)


class InMemoryDealService:
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, data: DealCreate) -> Deal:
        now = now_utc()
        deal = Deal(
            id=uuid4(), user_id=get_current_user_id(), created_at=now, updated_at=now,
            **data.model_dump()
        )
        self.db.tables["deals"][deal.id] = deal
        return deal

    def get_by_id(self, deal_id: UUID) -> Deal | None:
        return self.db.tables["deals"].get(deal_id)

    def mark_converted_to_lead(self, deal_id: UUID, lead_id: UUID, reason: str | None) -> Deal:
        deal = self.db.tables["deals"].get(deal_id)
        if deal is None or deal.converted_to_lead_id is not None:
            raise AlreadyConvertedError("deal", deal_id)
        return _update(
            self.db, "deals", deal_id, converted_to_lead_id=lead_id, conversion_reason=reason
        )

    def archive(self, deal_id: UUID) -> Deal:
        if deal_id not in self.db.tables["deals"]:
            raise ValueError(f"Deal {deal_id} not found")
        return _update(self.db, "deals", deal_id, archived_at=now_utc())

    def set_wfm_project(self, deal_id: UUID, wfm_project_id: UUID) -> None:
        if deal_id not in self.db.tables["deals"]:
            raise ValueError(f"Deal {deal_id} not found")
        _update(self.db, "deals", deal_id, wfm_project_id=wfm_project_id)


class InMemoryPersonService:
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, data: PersonCreate) -> Person:
        now = now_utc()
        person = Person(
            id=uuid4(), user_id=get_current_user_id(), created_at=now, updated_at=now,
            **data.model_dump()
        )
        self.db.tables["people"][person.id] = person
        return person

    def get_by_id(self, person_id: UUID) -> Person | None:
        return self.db.tables["people"].get(person_id)

    def find_by_email(self, email: str) -> Person | None:
        matches = [
            p for p in self.db.tables["people"].values()
            if p.email and p.email.lower() == email.lower()
        ]
        return min(matches, key=lambda p: p.created_at) if matches else None

    def link_organization(self, person_id: UUID, organization_id: UUID) -> Person:
        person = self.get_by_id(person_id)
        if person is None:
            raise ValueError(f"Person {person_id} not found")
        if person.organization_id == organization_id:
            return person
        return _update(self.db, "people", person_id, organization_id=organization_id)


class InMemoryOrganizationService:
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, data: OrganizationCreate) -> Organization:
        now = now_utc()
        organization = Organization(
            id=uuid4(), user_id=get_current_user_id(), created_at=now, updated_at=now,
            **data.model_dump()
        )
        self.db.tables["organizations"][organization.id] = organization
        return organization

    def get_by_id(self, organization_id: UUID) -> Organization | None:
        return self.db.tables["organizations"].get(organization_id)

    def find_by_name(self, name: str) -> Organization | None:
        matches = [o for o in self.db.tables["organizations"].values() if o.name == name]
        return min(matches, key=lambda o: o.created_at) if matches else None


class InMemoryActivityService:
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, data: ActivityCreate) -> Activity:
        now = now_utc()
        activity = Activity(
            id=uuid4(), user_id=get_current_user_id(), created_at=now, updated_at=now,
            **data.model_dump()
        )
        self.db.tables["activities"][activity.id] = activity
        return activity

    def list_for_lead(self, lead_id: UUID) -> list[Activity]:
        return [a for a in self.db.tables["activities"].values() if a.lead_id == lead_id]

    def list_for_deal(self, deal_id: UUID) -> list[Activity]:
        return [a for a in self.db.tables["activities"].values() if a.deal_id == deal_id]

    def move_lead_activities_to_deal(self, lead_id: UUID, deal_id: UUID, note: str) -> int:
        moved = self.list_for_lead(lead_id)
        for activity in moved:
            notes = f"{activity.notes}\n\n{note}" if activity.notes else note
            _update(self.db, "activities", activity.id, deal_id=deal_id, lead_id=None, notes=notes)
        return len(moved)


class InMemoryWorkflowService(WorkflowService):
    """Data access replaced; find_marker_step is the real implementation."""

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def get_project_type(self, project_type_id: UUID) -> ProjectType | None:
        return self.db.tables["project_types"].get(project_type_id)

    def find_project_type_by_name(self, name: str) -> ProjectType | None:
        for project_type in self.db.tables["project_types"].values():
            if project_type.name == name and not project_type.is_archived:
                return project_type
        return None

    def search_project_types(self, fragment: str) -> list[ProjectType]:
        return sorted(
            (
                pt for pt in self.db.tables["project_types"].values()
                if fragment.lower() in pt.name.lower() and not pt.is_archived
            ),
            key=lambda pt: pt.name,
        )

    def list_project_types(self) -> list[ProjectType]:
        return sorted(
            (pt for pt in self.db.tables["project_types"].values() if not pt.is_archived),
            key=lambda pt: pt.name,
        )

    def get_step(self, step_id: UUID) -> WorkflowStep | None:
        return self.db.tables["steps"].get(step_id)

    def list_steps(self, workflow_id: UUID) -> list[WorkflowStep]:
        return sorted(
            (s for s in self.db.tables["steps"].values() if s.workflow_id == workflow_id),
            key=lambda s: s.step_order,
        )

    def get_project(self, project_id: UUID) -> WFMProject | None:
        return self.db.tables["projects"].get(project_id)

    def create_project(self, data: WFMProjectCreate) -> WFMProject:
        step = self.get_step(data.current_step_id)
        if step is None or step.workflow_id != data.workflow_id:
            raise ValueError(
                f"Step {data.current_step_id} does not belong to workflow {data.workflow_id}"
            )
        now = now_utc()
        user_id = get_current_user_id()
        project = WFMProject(
            id=uuid4(), created_by_user_id=user_id, updated_by_user_id=user_id,
            created_at=now, updated_at=now, **data.model_dump()
        )
        self.db.tables["projects"][project.id] = project
        return project

    def move_to_step(self, project_id: UUID, step_id: UUID) -> WFMProject:
        project = self.get_project(project_id)
        if project is None:
            raise ValueError(f"WFM project {project_id} not found")
        step = self.get_step(step_id)
        if step is None or step.workflow_id != project.workflow_id:
            raise ValueError(f"Step {step_id} does not belong to workflow {project.workflow_id}")
        return _update(
            self.db, "projects", project_id,
            current_step_id=step_id, updated_by_user_id=get_current_user_id()
        )


class InMemoryHistoryRecorder:
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def record(self, entry: ConversionHistoryCreate) -> UUID:
        # Distinct timestamps keep newest-first ordering stable
        now = now_utc() + timedelta(microseconds=self.db.count("history"))
        stored = ConversionHistoryEntry(
            id=uuid4(), converted_at=now, created_at=now, **entry.model_dump()
        )
        self.db.tables["history"][stored.id] = stored
        return stored.id

    def query(self, entity_type: EntityType, entity_id: UUID) -> list[ConversionHistoryEntry]:
        matches = [
            e for e in self.db.tables["history"].values()
            if (e.source_entity_type == entity_type and e.source_entity_id == entity_id)
            or (e.target_entity_type == entity_type and e.target_entity_id == entity_id)
        ]
        return sorted(matches, key=lambda e: (e.converted_at, e.created_at), reverse=True)

    def get_by_id(self, history_id: UUID) -> ConversionHistoryEntry | None:
        return self.db.tables["history"].get(history_id)


# =============================================================================
# WORLD
# =============================================================================


@dataclass
class ConversionWorld:
    """Wired engine plus seeding helpers."""

    db: InMemoryDatabase
    postgres: InMemoryPostgres
    leads: InMemoryLeadService
    deals: InMemoryDealService
    people: InMemoryPersonService
    organizations: InMemoryOrganizationService
    activities: InMemoryActivityService
    workflows: InMemoryWorkflowService
    history: InMemoryHistoryRecorder
    config: ConversionConfig
    event_bus: EventBus
    validator: ConversionValidator
    planner: TransitionPlanner
    executor: TransitionExecutor
    forward: LeadToDealConverter
    backward: DealToLeadConverter
    bulk: BulkConversionCoordinator
    owner_id: UUID

    # --- workflow configuration ---

    def add_project_type(self, name: str, workflow_id: UUID | None = None, **fields) -> ProjectType:
        project_type = ProjectType(id=uuid4(), name=name, default_workflow_id=workflow_id, **fields)
        self.db.tables["project_types"][project_type.id] = project_type
        return project_type

    def add_workflow(self, *steps: tuple) -> UUID:
        """Steps as (name, metadata) in order; the first is the initial step."""
        workflow_id = uuid4()
        for order, (name, metadata) in enumerate(steps, start=1):
            self.add_step(
                workflow_id, name, order,
                is_initial_step=order == 1,
                is_final_step=order == len(steps),
                metadata=metadata,
            )
        return workflow_id

    def add_step(self, workflow_id: UUID, name: str, step_order: int, **fields) -> WorkflowStep:
        step = WorkflowStep(
            id=uuid4(), workflow_id=workflow_id, status_id=uuid4(),
            name=name, step_order=step_order, **fields
        )
        self.db.tables["steps"][step.id] = step
        return step

    def step(self, workflow_id: UUID, name: str) -> WorkflowStep:
        for step in self.workflows.list_steps(workflow_id):
            if step.name == name:
                return step
        raise KeyError(name)

    def project_type(self, name: str) -> ProjectType:
        project_type = self.workflows.find_project_type_by_name(name)
        if project_type is None:
            raise KeyError(name)
        return project_type

    @property
    def deal_workflow_id(self) -> UUID:
        return self.project_type("Sales Deal").default_workflow_id

    @property
    def lead_workflow_id(self) -> UUID:
        return self.project_type("Lead Qualification and Conversion Process").default_workflow_id

    # --- entities ---

    def add_lead(self, **fields) -> Lead:
        now = now_utc()
        values = {
            "id": uuid4(), "user_id": self.owner_id, "name": "Test Lead",
            "lead_score": 50, "created_at": now, "updated_at": now,
        }
        values.update(fields)
        lead = Lead(**values)
        self.db.tables["leads"][lead.id] = lead
        return lead

    def add_deal(self, **fields) -> Deal:
        now = now_utc()
        values = {
            "id": uuid4(), "user_id": self.owner_id, "name": "Test Deal",
            "amount": Decimal("5000"), "currency": "USD",
            "created_at": now - timedelta(days=30), "updated_at": now,
        }
        values.update(fields)
        deal = Deal(**values)
        self.db.tables["deals"][deal.id] = deal
        return deal

    def add_project(self, workflow_id: UUID, step_name: str, project_type_name: str) -> WFMProject:
        now = now_utc()
        project = WFMProject(
            id=uuid4(),
            name="Existing project",
            project_type_id=self.project_type(project_type_name).id,
            workflow_id=workflow_id,
            current_step_id=self.step(workflow_id, step_name).id,
            created_by_user_id=self.owner_id,
            updated_by_user_id=self.owner_id,
            created_at=now,
            updated_at=now,
        )
        self.db.tables["projects"][project.id] = project
        return project

    def add_lead_in_workflow(self, step_name: str = "New Lead", **fields) -> Lead:
        project = self.add_project(
            self.lead_workflow_id, step_name, "Lead Qualification and Conversion Process"
        )
        return self.add_lead(wfm_project_id=project.id, **fields)

    def add_deal_in_workflow(self, step_name: str = "Qualified", **fields) -> Deal:
        project = self.add_project(self.deal_workflow_id, step_name, "Sales Deal")
        return self.add_deal(wfm_project_id=project.id, **fields)

    def current_step(self, project_id: UUID) -> WorkflowStep:
        return self.workflows.get_step(self.workflows.get_project(project_id).current_step_id)


@pytest.fixture
def world(test_user_id) -> ConversionWorld:
    """Engine over in-memory services with the standard lead and deal workflows."""
    db = InMemoryDatabase()
    postgres = InMemoryPostgres(db)
    leads = InMemoryLeadService(db)
    deals = InMemoryDealService(db)
    people = InMemoryPersonService(db)
    organizations = InMemoryOrganizationService(db)
    activities = InMemoryActivityService(db)
    workflows = InMemoryWorkflowService(db)
    history = InMemoryHistoryRecorder(db)
    config = ConversionConfig()
    event_bus = EventBus()

    validator = ConversionValidator(leads, deals, workflows, config)
    planner = TransitionPlanner(workflows, config)
    executor = TransitionExecutor(postgres, workflows, leads, deals)
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

    w = ConversionWorld(
        db=db, postgres=postgres, leads=leads, deals=deals, people=people,
        organizations=organizations, activities=activities, workflows=workflows,
        history=history, config=config, event_bus=event_bus,
        validator=validator, planner=planner, executor=executor,
        forward=forward, backward=backward, bulk=bulk,
        owner_id=test_user_id,
    )

    deal_workflow = w.add_workflow(
        ("Lead In", None),
        ("Qualified", None),
        ("Proposal Development", None),
        ("Negotiation", {"deal_probability": 0.95}),
        ("Closed Won", {"outcome_type": "WON"}),
        ("Converted to Lead", None),
    )
    lead_workflow = w.add_workflow(
        ("New Lead", None),
        ("Qualified Lead", None),
        ("Hot Lead", None),
        ("Converted to Deal", None),
    )
    w.add_project_type("Sales Deal", deal_workflow)
    w.add_project_type("Lead Qualification and Conversion Process", lead_workflow)
    return w


@pytest.fixture
def published(world) -> list:
    """Every event published on the world's bus."""
    events = []
    for event_type in ("LeadConvertedToDeal", "DealConvertedToLead", "BulkConversionCompleted"):
        world.event_bus.subscribe(event_type, events.append)
    return events
