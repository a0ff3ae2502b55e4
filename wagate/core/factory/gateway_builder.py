"""
GatewayBuilder - plugin based FastAPI application factory for the gateway.

Collects plugins, middleware, routers and lifecycle hooks, then assembles a
FastAPI app whose lifespan runs every hook in priority order.
"""

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from .plugin import GatewayPlugin


class GatewayBuilder:
    """
    Fluent builder for the gateway's FastAPI application.

    Example:
        app = (
            GatewayBuilder()
            .add_plugin(GatewayCorePlugin())
            .add_middleware(CORSMiddleware, priority=10, allow_origins=["*"])
            .configure(title="wagate")
            .build()
        )
    """

    def __init__(self):
        self.plugins: list[GatewayPlugin] = []
        self.middlewares: list[tuple[type, dict, int]] = []  # (class, kwargs, priority)
        self.routers: list[tuple[Any, dict]] = []  # (router, include_kwargs)
        self.startup_hooks: list[tuple[Callable, int]] = []  # (hook, priority)
        self.shutdown_hooks: list[tuple[Callable, int]] = []  # (hook, priority)
        self.config_overrides: dict[str, Any] = {}

    def add_plugin(self, plugin: "GatewayPlugin") -> "GatewayBuilder":
        self.plugins.append(plugin)
        return self

    def add_middleware(
        self, middleware_class: type, priority: int = 50, **kwargs: Any
    ) -> "GatewayBuilder":
        """
        Add middleware with priority ordering.

        Lower numbers are outer middleware (see the request first), higher
        numbers sit closer to the routes. Default priority is 50.
        """
        self.middlewares.append((middleware_class, kwargs, priority))
        return self

    def add_router(self, router: Any, **kwargs: Any) -> "GatewayBuilder":
        """Include a router; kwargs go to app.include_router()."""
        self.routers.append((router, kwargs))
        return self

    def add_startup_hook(self, hook: Callable, priority: int = 50) -> "GatewayBuilder":
        """
        Add an async ``hook(app)`` run at startup, lowest priority first.

        Priority Guidelines:
        - 10: Core system (logging, HTTP session, registry, session manager)
        - 20: Infrastructure
        - 30: Session bootstrap
        - 50: User hooks (default)
        """
        self.startup_hooks.append((hook, priority))
        return self

    def add_shutdown_hook(self, hook: Callable, priority: int = 50) -> "GatewayBuilder":
        """
        Add an async ``hook(app)`` run at shutdown, highest priority first.

        Priority Guidelines:
        - 90: Core system cleanup, runs last
        - 50: User hooks (default)
        - 10: Early cleanup
        """
        self.shutdown_hooks.append((hook, priority))
        return self

    def configure(self, **overrides: Any) -> "GatewayBuilder":
        """Override FastAPI constructor arguments."""
        self.config_overrides.update(overrides)
        return self

    def build(self) -> FastAPI:
        """
        Assemble the FastAPI application.

        1. Configure plugins (sync registration only)
        2. Create the app with the unified lifespan
        3. Add middleware in priority order
        4. Include routers
        """
        logger = get_app_logger()
        logger.debug(f"🏗️ Building gateway app with {len(self.plugins)} plugins")

        for plugin in self.plugins:
            plugin.configure(self)
        if self.plugins:
            logger.info(
                f"✅ Plugins configured - {len(self.middlewares)} middlewares, "
                f"{len(self.routers)} routers, {len(self.startup_hooks)} startup hooks, "
                f"{len(self.shutdown_hooks)} shutdown hooks"
            )

        @asynccontextmanager
        async def unified_lifespan(app: FastAPI):
            try:
                await self._execute_all_startup_hooks(app)
                logger.info("✅ All startup hooks completed successfully")
                yield
            except Exception as e:
                logger.error(f"❌ Error during startup phase: {e}", exc_info=True)
                raise
            finally:
                await self._execute_all_shutdown_hooks(app)
                logger.info("✅ All shutdown hooks completed")

        default_config = {
            "title": "wagate",
            "description": "Multi-tenant messaging session gateway",
            "version": "1.0.0",
            "lifespan": unified_lifespan,
        }
        default_config.update(self.config_overrides)
        app = FastAPI(**default_config)

        # add_middleware wraps, so the last added is the outermost
        for middleware_class, kwargs, priority in sorted(
            self.middlewares, key=lambda x: x[2], reverse=True
        ):
            app.add_middleware(middleware_class, **kwargs)
            logger.debug(
                f"Added middleware {middleware_class.__name__} (priority: {priority})"
            )

        for router, kwargs in self.routers:
            app.include_router(router, **kwargs)

        logger.info(
            f"🎉 GatewayBuilder created app: {len(self.plugins)} plugins, "
            f"{len(self.middlewares)} middlewares, {len(self.routers)} routers"
        )
        return app

    async def _execute_all_startup_hooks(self, app: FastAPI) -> None:
        """Run startup hooks in priority order; the first failure aborts startup."""
        logger = get_app_logger()
        for hook, priority in sorted(self.startup_hooks, key=lambda x: x[1]):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"⚡ Executing startup hook: {hook_name} (priority: {priority})")
            try:
                await hook(app)
            except Exception as e:
                logger.error(f"❌ Startup hook {hook_name} failed: {e}", exc_info=True)
                raise

    async def _execute_all_shutdown_hooks(self, app: FastAPI) -> None:
        """Run shutdown hooks in reverse priority order; failures are isolated."""
        logger = get_app_logger()
        for hook, priority in sorted(
            self.shutdown_hooks, key=lambda x: x[1], reverse=True
        ):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            try:
                logger.debug(f"🛑 Executing shutdown hook: {hook_name} (priority: {priority})")
                await hook(app)
            except Exception as e:
                # keep shutting down the rest
                logger.error(f"❌ Error in shutdown hook {hook_name}: {e}", exc_info=True)
