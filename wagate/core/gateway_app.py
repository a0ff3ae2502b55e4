"""
Main gateway application class.

Wraps GatewayBuilder with the core plugin and exposes the combined ASGI
application: Socket.IO in front, FastAPI for every other path.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI

from wagate.adapter.interface import AdapterFactory

from .config.settings import settings
from .factory.gateway_builder import GatewayBuilder
from .logging.logger import get_app_logger
from .plugins.gateway_core_plugin import GatewayCorePlugin

if TYPE_CHECKING:
    from .factory.plugin import GatewayPlugin


class Gateway:
    """
    The session gateway application.

    Usage:
        gateway = Gateway()
        gateway.run()

    With an explicit protocol engine and extra plugins:
        gateway = Gateway(adapter_factory=MyEngineFactory())
        gateway.add_plugin(MetricsPlugin())
        asgi = gateway.asgi  # for uvicorn "module:asgi"
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory | None = None,
        bus_enabled: bool = True,
        bootstrap: bool = True,
        config: dict[str, Any] | None = None,
    ):
        self.config = config or {}
        self._app: FastAPI | None = None
        self._asgi: Any = None

        self._builder = GatewayBuilder()
        self._core_plugin = GatewayCorePlugin(
            adapter_factory=adapter_factory,
            bus_enabled=bus_enabled,
            bootstrap=bootstrap,
        )
        self._builder.add_plugin(self._core_plugin)

        logger = get_app_logger()
        logger.debug(
            f"🏗️ Gateway initialized, bus={bus_enabled}, bootstrap={bootstrap}, "
            f"config_overrides={bool(self.config)}"
        )

    def add_plugin(self, plugin: "GatewayPlugin") -> "Gateway":
        """Add a plugin; must happen before the app is created."""
        self._ensure_not_built()
        self._builder.add_plugin(plugin)
        return self

    def add_startup_hook(self, hook: Callable, priority: int = 50) -> "Gateway":
        self._ensure_not_built()
        self._builder.add_startup_hook(hook, priority)
        return self

    def add_shutdown_hook(self, hook: Callable, priority: int = 50) -> "Gateway":
        self._ensure_not_built()
        self._builder.add_shutdown_hook(hook, priority)
        return self

    def _ensure_not_built(self) -> None:
        if self._app is not None:
            raise RuntimeError("Gateway app already created; configure before create_app()")

    def create_app(self) -> FastAPI:
        """Build the FastAPI application (once)."""
        if self._app is not None:
            return self._app

        self._builder.configure(
            title="wagate",
            description="Multi-tenant messaging session gateway",
            version=settings.version,
            docs_url="/docs" if settings.is_development else None,
            redoc_url="/redoc" if settings.is_development else None,
            **self.config,
        )
        self._app = self._builder.build()
        get_app_logger().info(
            f"✅ Gateway app created - plugins: {len(self._builder.plugins)}"
        )
        return self._app

    @property
    def app(self) -> FastAPI:
        """The FastAPI application, without the Socket.IO wrapper."""
        return self.create_app()

    @property
    def asgi(self) -> Any:
        """
        ASGI entrypoint for uvicorn.

        Socket.IO traffic is served by the subscriber bus, everything else
        (lifespan included) falls through to FastAPI.
        """
        if self._asgi is None:
            app = self.create_app()
            bus = self._core_plugin.bus
            self._asgi = bus.asgi_app(app) if bus is not None else app
        return self._asgi

    def run(self, host: str | None = None, port: int | None = None, **kwargs: Any) -> None:
        """
        Run the gateway with uvicorn in this process.

        For auto-reload use the CLI: ``wagate dev``.
        """
        host = host or settings.host
        port = port or settings.port

        logger = get_app_logger()
        logger.info(f"Starting wagate v{settings.version} server on {host}:{port}")
        logger.info(f"Mode: {'development' if settings.is_development else 'production'}")

        uvicorn_config = {
            "host": host,
            "port": port,
            "log_level": settings.log_level.lower(),
            **kwargs,
        }
        uvicorn.run(self.asgi, **uvicorn_config)
