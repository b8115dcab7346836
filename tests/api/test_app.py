"""Tests for api/app.py - production wiring with infrastructure patched out."""

from unittest.mock import patch

from starlette.testclient import TestClient

import api.app as app_module
from api.app import build_app
from core.conversion import LeadToDealConverter


class TestBuildApp:

    def test_wires_clients_from_vault(self):
        """Postgres and Valkey get the Vault URLs; the engine is real."""
        with patch("api.app.get_database_url", return_value="postgresql://db/crm"), \
                patch("api.app.get_valkey_url", return_value="redis://cache:6379/0"), \
                patch("api.app.PostgresClient") as postgres_class, \
                patch("api.app.ValkeyClient") as valkey_class, \
                patch("api.app.create_app", wraps=app_module.create_app) as create:
            app = build_app()

        postgres_class.assert_called_once_with("postgresql://db/crm")
        valkey_class.assert_called_once_with("redis://cache:6379/0")
        engine = create.call_args[0][0]
        assert isinstance(engine.forward, LeadToDealConverter)
        assert TestClient(app).get("/health").status_code == 200

    def test_notifications_subscribed(self):
        """The notification handler is registered on the engine's bus."""
        with patch("api.app.get_database_url", return_value="postgresql://db/crm"), \
                patch("api.app.get_valkey_url", return_value="redis://cache:6379/0"), \
                patch("api.app.PostgresClient"), \
                patch("api.app.ValkeyClient"), \
                patch("api.app.register_conversion_notifications") as register:
            build_app()

        bus, _ = register.call_args[0]
        assert bus.__class__.__name__ == "EventBus"
