"""
Live subscriber bus.

Room-based publish channel keyed by session id. The lifecycle manager
publishes ``qr``, ``ready`` and ``closed`` notifications; browser clients
authenticate with an API key and join the rooms of the sessions they may
observe.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import socketio

from wagate.core.auth import AuthContext

logger = logging.getLogger(__name__)

KeyResolver = Callable[[str | None], AuthContext | None]
AccessCheck = Callable[[AuthContext, str], bool]


@runtime_checkable
class SubscriberBus(Protocol):
    """What the lifecycle manager needs from a live subscriber channel."""

    async def publish(self, room: str, event: str, data: dict[str, Any]) -> None:
        ...


class NullSubscriberBus:
    """Bus that drops every notification (no live UI attached)."""

    async def publish(self, room: str, event: str, data: dict[str, Any]) -> None:
        logger.debug("No subscriber bus, dropping %s for %s", event, room)


class SocketIOSubscriberBus:
    """
    Socket.IO implementation of the subscriber bus.

    Clients connect with ``auth={"apiKey": "..."}`` (or an ``X-API-Key``
    header) and emit ``join`` with ``{"room": "<session id>"}``; the join is
    acknowledged with ``{"ok": bool, "error"?: str}``.

    Usage:
        bus = SocketIOSubscriberBus(resolve_key, cors_allowed_origins="*")
        bus.access_check = manager.can_access
        asgi_app = bus.asgi_app(fastapi_app)
    """

    def __init__(
        self,
        resolve_key: KeyResolver,
        access_check: AccessCheck | None = None,
        cors_allowed_origins: str | list[str] = "*",
    ):
        self.resolve_key = resolve_key
        self.access_check = access_check
        self.sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=cors_allowed_origins,
            logger=False,
            engineio_logger=False,
        )
        self._clients: dict[str, AuthContext] = {}
        self._setup_handlers()

    @property
    def connected(self) -> int:
        return len(self._clients)

    def asgi_app(self, other_asgi_app: Any) -> socketio.ASGIApp:
        """Wrap another ASGI app so Socket.IO shares its port."""
        return socketio.ASGIApp(self.sio, other_asgi_app=other_asgi_app)

    def _setup_handlers(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("join", self.on_join)
        self.sio.on("leave", self.on_leave)

    async def on_connect(self, sid: str, environ: dict[str, Any], auth: Any = None) -> bool:
        api_key = None
        if isinstance(auth, dict):
            api_key = auth.get("apiKey") or auth.get("api_key")
        if not api_key:
            api_key = environ.get("HTTP_X_API_KEY")

        context = self.resolve_key(api_key)
        if context is None:
            logger.warning("Rejected socket connection %s: invalid api key", sid)
            return False

        self._clients[sid] = context
        logger.info("Socket client %s connected (%s)", sid, context.role.value)
        return True

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        self._clients.pop(sid, None)
        logger.debug("Socket client %s disconnected", sid)

    async def on_join(self, sid: str, data: Any) -> dict[str, Any]:
        room = data.get("room") if isinstance(data, dict) else data
        context = self._clients.get(sid)
        if not room or context is None:
            return {"ok": False, "error": "room required"}

        if not context.is_admin and (
            self.access_check is None or not self.access_check(context, room)
        ):
            logger.warning("Socket client %s denied room %s", sid, room)
            return {"ok": False, "error": "forbidden"}

        await self.sio.enter_room(sid, room)
        logger.debug("Socket client %s joined %s", sid, room)
        return {"ok": True}

    async def on_leave(self, sid: str, data: Any) -> dict[str, Any]:
        room = data.get("room") if isinstance(data, dict) else data
        if room:
            await self.sio.leave_room(sid, room)
        return {"ok": True}

    async def publish(self, room: str, event: str, data: dict[str, Any]) -> None:
        await self.sio.emit(event, data, room=room)
