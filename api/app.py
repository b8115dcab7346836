"""FastAPI application wiring for the conversion service."""

import logging

from fastapi import FastAPI

from api.base import success_response
from api.conversions import create_conversions_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.config import AuthConfig
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_valkey_url
from core.config import ConversionConfig
from core.conversion import ConversionEngine, build_conversion_engine
from core.event_bus import EventBus
from core.handlers.conversion_notification_handler import register_conversion_notifications

logger = logging.getLogger(__name__)


def create_app(
    engine: ConversionEngine,
    session_manager: SessionManager,
    auth_config: AuthConfig | None = None
) -> FastAPI:
    """
    Build the app: request IDs, session auth, error envelope, conversion routes.

    Middleware added last runs first, so RequestIDMiddleware wraps auth and
    401 responses still carry X-Request-ID.
    """
    auth_config = auth_config or AuthConfig()

    app = FastAPI(title="CRM Conversions")
    app.add_middleware(
        AuthMiddleware,
        session_manager=session_manager,
        cookie_name=auth_config.session_cookie_name,
    )
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return success_response({"status": "ok"}).model_dump(mode="json")

    app.include_router(create_conversions_router(engine), prefix="/api")
    return app


def build_app(auth_config: AuthConfig | None = None, config: ConversionConfig | None = None) -> FastAPI:
    """
    Production wiring: secrets from Vault, Postgres and Valkey clients, the
    conversion engine on a shared EventBus and Valkey notifications.

    Raises:
        ValueError / VaultError: If Vault is not configured or unreachable
    """
    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())

    event_bus = EventBus()
    register_conversion_notifications(event_bus, valkey)

    engine = build_conversion_engine(postgres, config=config, event_bus=event_bus)
    auth_config = auth_config or AuthConfig()
    app = create_app(engine, SessionManager(valkey, auth_config), auth_config)
    logger.info("Conversion service wired")
    return app
