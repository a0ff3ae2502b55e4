"""
Gateway Core Plugin

Wires the whole gateway into a GatewayBuilder: logging, the shared HTTP
session, session registry and credential store, webhook dispatcher, the
session lifecycle manager, the Socket.IO subscriber bus, middleware and
routes. Startup bootstraps every persisted auto-start session; shutdown
stops runtimes before the HTTP session is closed.
"""

from typing import TYPE_CHECKING

import aiohttp
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wagate.adapter.interface import AdapterFactory
from wagate.adapter.loader import load_adapter_factory
from wagate.api.limits import RequestLimits
from wagate.api.middleware.error_handler import ErrorHandlerMiddleware
from wagate.api.middleware.request_logging import RequestLoggingMiddleware
from wagate.api.routes.admin import router as admin_router
from wagate.api.routes.health import router as health_router
from wagate.api.routes.media_upload import router as media_upload_router
from wagate.api.routes.messages import router as messages_router
from wagate.api.routes.qr import router as qr_router
from wagate.api.routes.sessions import router as sessions_router
from wagate.api.routes.webhooks import router as webhooks_router
from wagate.bus.subscriber_bus import NullSubscriberBus, SocketIOSubscriberBus
from wagate.core.auth import AuthContext, resolve_api_key
from wagate.core.tasks import TaskSupervisor
from wagate.messaging.content import ContentBuilder
from wagate.sessions.auto_reply import AutoReplyResponder
from wagate.sessions.credentials import CredentialStore
from wagate.sessions.manager import SessionLifecycleManager
from wagate.sessions.models import WebhookTarget
from wagate.sessions.qr_cache import QRCache
from wagate.sessions.reconnection import ReconnectionConfig, ReconnectionStrategy
from wagate.sessions.registry import SessionRegistry
from wagate.webhooks.dispatcher import WebhookDispatcher, WebhookOptions

from ..config.settings import settings
from ..logging.logger import get_app_logger, setup_app_logging

if TYPE_CHECKING:
    from ..factory.gateway_builder import GatewayBuilder


def resolve_settings_key(api_key: str | None) -> AuthContext | None:
    """Resolve an API key against the configured admin and user keys."""
    return resolve_api_key(api_key, settings.admin_api_key, settings.user_api_keys)


class GatewayCorePlugin:
    """
    Core gateway functionality as a plugin.

    Everything the routes depend on is created in the startup hook and stored
    on ``app.state``:

    - http_session: shared aiohttp session (webhooks, media downloads)
    - supervisor: background task supervisor
    - registry / credential_store: persisted session state
    - session_manager: the lifecycle manager
    - request_limits: rate limit, cooldown and quota counters
    - subscriber_bus: live event fan-out

    The Socket.IO bus exists from construction so the ASGI wrapper can be
    built before the lifespan runs.
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory | None = None,
        bus_enabled: bool = True,
        bootstrap: bool = True,
    ):
        """
        Args:
            adapter_factory: Protocol engine; defaults to ADAPTER_FACTORY
            bus_enabled: Create the Socket.IO subscriber bus
            bootstrap: Start persisted auto-start sessions on startup
        """
        self.adapter_factory = adapter_factory
        self.bootstrap = bootstrap
        self.bus: SocketIOSubscriberBus | None = (
            SocketIOSubscriberBus(
                resolve_key=resolve_settings_key,
                cors_allowed_origins=settings.allowed_origins or "*",
            )
            if bus_enabled
            else None
        )

    def configure(self, builder: "GatewayBuilder") -> None:
        logger = get_app_logger()
        logger.debug("🏗️ Configuring GatewayCorePlugin...")

        builder.add_middleware(ErrorHandlerMiddleware, priority=80)
        builder.add_middleware(RequestLoggingMiddleware, priority=70)
        builder.add_middleware(
            CORSMiddleware,
            priority=10,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        builder.add_router(health_router)
        builder.add_router(sessions_router, prefix="/api")
        builder.add_router(messages_router, prefix="/api")
        builder.add_router(media_upload_router, prefix="/api")
        builder.add_router(webhooks_router, prefix="/api")
        builder.add_router(admin_router, prefix="/api")
        builder.add_router(qr_router)

        builder.add_startup_hook(self._core_startup, priority=10)
        builder.add_startup_hook(self._bootstrap_sessions, priority=30)
        builder.add_shutdown_hook(self._core_shutdown, priority=90)

        logger.debug("✅ GatewayCorePlugin configured - middleware: 3, routes: 5, hooks: 3")

    async def startup(self, app: FastAPI) -> None:
        await self._core_startup(app)

    async def shutdown(self, app: FastAPI) -> None:
        await self._core_shutdown(app)

    def _resolve_adapter(self) -> AdapterFactory:
        if self.adapter_factory is not None:
            return self.adapter_factory
        if not settings.adapter_factory:
            raise RuntimeError(
                "No protocol adapter configured - set ADAPTER_FACTORY=package.module:attribute"
            )
        return load_adapter_factory(settings.adapter_factory)

    async def _core_startup(self, app: FastAPI) -> None:
        """
        Build every core component, in dependency order.

        Runs first (priority 10); the bootstrap hook relies on it.
        """
        logger = None
        try:
            setup_app_logging()
            logger = get_app_logger()

            logger.info(f"🚀 Starting wagate v{settings.version}")
            logger.info(f"📊 Environment: {settings.environment}")
            logger.info(f"📝 Log level: {settings.log_level}")
            logger.info(f"💾 Data dir: {settings.data_dir}, credentials: {settings.credentials_dir}")

            connector = aiohttp.TCPConnector(
                limit=100, keepalive_timeout=30, enable_cleanup_closed=True
            )
            app.state.http_session = aiohttp.ClientSession(
                connector=connector, timeout=aiohttp.ClientTimeout(total=30)
            )
            logger.info("🌐 Persistent HTTP session created - connections: 100, keepalive: 30s")

            supervisor = TaskSupervisor()
            app.state.supervisor = supervisor

            registry = SessionRegistry(settings.registry_path)
            await registry.load()
            app.state.registry = registry

            credential_store = CredentialStore(settings.credentials_dir)
            app.state.credential_store = credential_store

            dispatcher = WebhookDispatcher(
                app.state.http_session, supervisor, options=WebhookOptions.from_settings()
            )

            bus = self.bus or NullSubscriberBus()
            manager = SessionLifecycleManager(
                registry=registry,
                credentials=credential_store,
                adapter_factory=self._resolve_adapter(),
                dispatcher=dispatcher,
                content_builder=ContentBuilder(
                    app.state.http_session, media_timeout=settings.media_fetch_timeout
                ),
                bus=bus,
                supervisor=supervisor,
                qr_cache=QRCache(settings.qr_ttl_seconds),
                reconnection=ReconnectionStrategy(
                    ReconnectionConfig(
                        base_delay=settings.reconnect_base_ms / 1000,
                        max_delay=settings.reconnect_max_ms / 1000,
                    )
                ),
                auto_reply=AutoReplyResponder.from_settings(
                    settings.autoreply_enabled, settings.autoreply_ping_pong
                ),
                relaunch_on_logout=settings.relaunch_on_logout,
                default_webhook=WebhookTarget(
                    url=settings.webhook_default_url,
                    secret=settings.webhook_default_secret,
                ),
            )
            if self.bus is not None:
                self.bus.access_check = manager.can_access
            app.state.session_manager = manager
            app.state.subscriber_bus = bus
            app.state.request_limits = RequestLimits.from_settings(settings)

            base_url = f"http://localhost:{settings.port}"
            logger.info("=== AVAILABLE ENDPOINTS ===")
            logger.info(f"🏥 Health Check: {base_url}/health")
            logger.info(f"📱 Sessions API: {base_url}/api/sessions")
            logger.info(f"✉️ Messages API: {base_url}/api/messages/...")
            logger.info(f"🛠️ Admin API: {base_url}/api/admin/config")
            logger.info(
                f"🔌 Socket.IO: {base_url}/socket.io"
                if self.bus is not None
                else "🔌 Socket.IO bus disabled"
            )
            logger.info(
                f"📖 API Documentation: {base_url}/docs"
                if settings.is_development
                else "📖 API docs disabled in production"
            )
            logger.info("============================")
            logger.info("✅ wagate core startup completed successfully")

        except Exception as e:
            if logger:
                logger.error(f"❌ Error during wagate core startup: {e}", exc_info=True)
            raise

    async def _bootstrap_sessions(self, app: FastAPI) -> None:
        if not self.bootstrap:
            return
        count = await app.state.session_manager.bootstrap_all()
        get_app_logger().info(f"🔁 Bootstrapped {count} persisted sessions")

    async def _core_shutdown(self, app: FastAPI) -> None:
        """
        Stop runtimes, drain background work, then close the HTTP session.

        Runs last (priority 90).
        """
        logger = get_app_logger()
        logger.info("🛑 Starting wagate core shutdown...")

        try:
            if hasattr(app.state, "session_manager"):
                await app.state.session_manager.shutdown()
            if hasattr(app.state, "supervisor"):
                await app.state.supervisor.shutdown()
            if hasattr(app.state, "http_session"):
                await app.state.http_session.close()
                logger.info("🌐 Persistent HTTP session closed cleanly")

            logger.info("✅ wagate core shutdown completed")

        except Exception as e:
            logger.error(f"❌ Error during wagate core shutdown: {e}", exc_info=True)
