"""
Gateway Plugin Protocol

Interface every plugin implements to take part in GatewayBuilder assembly.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .gateway_builder import GatewayBuilder


class GatewayPlugin(Protocol):
    """
    Extension point of the gateway application.

    Lifecycle:
    1. configure: synchronous, registers middleware/routers/hooks on the builder
    2. startup: async, runs inside the application lifespan
    3. shutdown: async, releases whatever startup acquired
    """

    def configure(self, builder: "GatewayBuilder") -> None:
        """
        Register middleware, routers and lifecycle hooks.

        Runs before the FastAPI app exists; no I/O here.
        """
        ...

    async def startup(self, app: "FastAPI") -> None:
        """Acquire resources (sessions, connections) and store them on app.state."""
        ...

    async def shutdown(self, app: "FastAPI") -> None:
        """Release resources in reverse order of startup."""
        ...
