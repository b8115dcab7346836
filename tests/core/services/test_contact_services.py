"""Tests for PersonService, OrganizationService and ActivityService against a mocked PostgresClient."""

from unittest.mock import Mock
from uuid import uuid4

import pytest

from clients.postgres_client import PostgresClient
from core.audit import AuditAction, AuditLogger
from core.models import OrganizationCreate, PersonCreate
from core.services.activity_service import ActivityService
from core.services.organization_service import OrganizationService
from core.services.person_service import PersonService
from utils.timezone import now_utc


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


@pytest.fixture
def audit():
    return Mock(spec=AuditLogger)


def person_row(user_id, **fields):
    now = now_utc()
    row = {"id": uuid4(), "user_id": user_id, "created_at": now, "updated_at": now}
    row.update(fields)
    return row


class TestPersonService:
    """Person lookup and linking."""

    def test_create_audits(self, postgres, audit, as_test_user, test_user_id):
        postgres.execute_returning.return_value = [person_row(test_user_id, email="a@acme.com")]

        person = PersonService(postgres, audit).create(PersonCreate(email="a@acme.com"))

        assert person.email == "a@acme.com"
        assert audit.log_change.call_args.kwargs["changes"] == {"created": {"email": "a@acme.com"}}

    def test_find_by_email_is_case_insensitive(self, postgres, audit):
        postgres.execute_single.return_value = None

        PersonService(postgres, audit).find_by_email("A@Acme.com")

        query, params = postgres.execute_single.call_args[0]
        assert "lower(email) = lower(%s)" in query
        assert params == ("A@Acme.com",)

    def test_link_organization_missing_person(self, postgres, audit):
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="not found"):
            PersonService(postgres, audit).link_organization(uuid4(), uuid4())

    def test_link_organization_already_linked(self, postgres, audit, test_user_id):
        """No write when the link exists."""
        org_id = uuid4()
        postgres.execute_single.return_value = person_row(test_user_id, organization_id=org_id)

        PersonService(postgres, audit).link_organization(uuid4(), org_id)

        postgres.execute_returning.assert_not_called()

    def test_link_organization_updates(self, postgres, audit, as_test_user, test_user_id):
        org_id = uuid4()
        row = person_row(test_user_id)
        postgres.execute_single.return_value = row
        postgres.execute_returning.return_value = [{**row, "organization_id": org_id}]

        person = PersonService(postgres, audit).link_organization(row["id"], org_id)

        assert person.organization_id == org_id
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.UPDATE


class TestOrganizationService:
    """Organization lookup."""

    def test_find_by_name_exact(self, postgres, audit, test_user_id):
        postgres.execute_single.return_value = person_row(test_user_id, name="Acme Inc")

        organization = OrganizationService(postgres, audit).find_by_name("Acme Inc")

        assert organization.name == "Acme Inc"
        assert postgres.execute_single.call_args[0][1] == ("Acme Inc",)

    def test_create(self, postgres, audit, as_test_user, test_user_id):
        postgres.execute_returning.return_value = [person_row(test_user_id, name="Globex")]

        organization = OrganizationService(postgres, audit).create(OrganizationCreate(name="Globex"))

        assert organization.user_id == test_user_id
        audit.log_change.assert_called_once()


class TestActivityService:
    """Activity migration."""

    def test_move_lead_activities_to_deal(self, postgres, audit, as_test_user):
        """Each moved activity is audited and the count returned."""
        lead_id, deal_id = uuid4(), uuid4()
        moved = [{"id": uuid4()}, {"id": uuid4()}]
        postgres.execute_returning.return_value = moved

        count = ActivityService(postgres, audit).move_lead_activities_to_deal(lead_id, deal_id, "note")

        assert count == 2
        query, params = postgres.execute_returning.call_args[0]
        assert "WHERE lead_id = %s" in query
        assert params[0] == deal_id
        assert params[-1] == lead_id
        assert [c.kwargs["entity_id"] for c in audit.log_change.call_args_list] == [m["id"] for m in moved]

    def test_no_activities(self, postgres, audit):
        postgres.execute_returning.return_value = []

        assert ActivityService(postgres, audit).move_lead_activities_to_deal(uuid4(), uuid4(), "n") == 0
        audit.log_change.assert_not_called()
