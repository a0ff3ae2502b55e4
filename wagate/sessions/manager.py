"""
Session Lifecycle Manager - creates, supervises, reconnects and tears down
per-tenant protocol connections.

The manager is the only owner of the live session map. It consumes each
adapter connection's event stream and turns every event into a state machine
transition:

    starting -> open                    ConnectionOpened
    starting|open -> reconnecting       ConnectionClosed (any other reason)
    reconnecting -> starting            reconnect timer fired
    * -> logged_out -> starting         ConnectionClosed (logged out), purge + relaunch
    * -> stopped                        stop_runtime()

Side effects of transitions fan out to the subscriber bus (qr, ready,
closed) and to the webhook dispatcher (session_open, message_received).
Outbound sends are serialized through the session's OutboundQueue.
"""

import asyncio
import secrets
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from wagate.adapter.interface import (
    AdapterConnection,
    AdapterEvent,
    AdapterFactory,
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    CredentialState,
    MessagesReceived,
    QRChallenge,
)
from wagate.bus.subscriber_bus import NullSubscriberBus, SubscriberBus
from wagate.core.auth import AuthContext
from wagate.core.exceptions import (
    SessionAccessDeniedError,
    SessionNotFoundError,
    SessionNotReadyError,
    UnsupportedActionError,
)
from wagate.core.logging.context import set_request_context
from wagate.core.logging.logger import get_logger, get_session_logger
from wagate.core.tasks import TaskSupervisor
from wagate.core.types import SessionStatus, StopMode, validate_stop_mode
from wagate.messaging.content import ContentBuilder
from wagate.webhooks.dispatcher import ActionContext, WebhookDispatcher

from .auto_reply import AutoReplyResponder, should_forward
from .credentials import CredentialStore
from .models import SessionMeta, SessionRuntime, SessionView, WebhookTarget, now_ms
from .qr_cache import QRCache
from .reconnection import ReconnectionStrategy
from .registry import SessionRegistry

SleepFn = Callable[[float], Awaitable[None]]


def new_session_id() -> str:
    """Globally unique id that sorts by creation time (ms timestamp prefix)."""
    return f"{now_ms():012X}{secrets.token_hex(8).upper()}"


class SessionLifecycleManager:
    """
    Owner of all live session runtimes.

    Read accessors return SessionView snapshots; the runtime objects never
    leave this class.

    Usage:
        manager = SessionLifecycleManager(
            registry=registry,
            credentials=CredentialStore(settings.credentials_dir),
            adapter_factory=load_adapter_factory(settings.adapter_factory),
            dispatcher=dispatcher,
            content_builder=ContentBuilder(http_session),
            bus=socket_bus,
            supervisor=supervisor,
        )
        await manager.bootstrap_all()
    """

    def __init__(
        self,
        registry: SessionRegistry,
        credentials: CredentialStore,
        adapter_factory: AdapterFactory,
        dispatcher: WebhookDispatcher | None = None,
        content_builder: ContentBuilder | None = None,
        bus: SubscriberBus | None = None,
        supervisor: TaskSupervisor | None = None,
        qr_cache: QRCache | None = None,
        reconnection: ReconnectionStrategy | None = None,
        auto_reply: AutoReplyResponder | None = None,
        relaunch_on_logout: bool = True,
        default_webhook: WebhookTarget | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.registry = registry
        self.credentials = credentials
        self.adapter_factory = adapter_factory
        self.dispatcher = dispatcher
        self.content_builder = content_builder
        self.bus = bus or NullSubscriberBus()
        self.supervisor = supervisor or TaskSupervisor()
        self.qr_cache = qr_cache or QRCache()
        self.reconnection = reconnection or ReconnectionStrategy()
        self.auto_reply = auto_reply or AutoReplyResponder()
        self.relaunch_on_logout = relaunch_on_logout
        self.default_webhook = default_webhook or WebhookTarget()
        self._sleep = sleep

        self._sessions: dict[str, SessionRuntime] = {}
        # session id -> (lock, number of holders and waiters)
        self._create_locks: dict[str, tuple[asyncio.Lock, int]] = {}
        self.logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def live_count(self) -> int:
        return len(self._sessions)

    def is_live(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list_sessions(self, auth: AuthContext | None = None) -> list[SessionView]:
        """
        Every known session, registry metadata merged with live state.

        Sessions without a runtime are reported as ``stopped``; live runtimes
        override the registry defaults. Sorted by creation time.
        """
        metas = {meta.id: meta for meta in self.registry.list()}
        views: dict[str, SessionView] = {
            session_id: self._stopped_view(meta) for session_id, meta in metas.items()
        }
        for session_id, runtime in self._sessions.items():
            views[session_id] = runtime.view(metas.get(session_id))

        items = [
            view
            for view in views.values()
            if auth is None or auth.can_access(view.owner_id)
        ]
        return sorted(items, key=lambda view: view.created_at or 0)

    def get_session(self, session_id: str) -> SessionView | None:
        """Snapshot of one session, or None if the id is unknown."""
        meta = self.registry.get(session_id)
        runtime = self._sessions.get(session_id)
        if runtime is not None:
            return runtime.view(meta)
        if meta is not None:
            return self._stopped_view(meta)
        return None

    def get_qr(self, session_id: str) -> str | None:
        """Current QR challenge of a session, if one is pending and unexpired."""
        return self.qr_cache.get(session_id)

    @staticmethod
    def _stopped_view(meta: SessionMeta) -> SessionView:
        return SessionView(
            id=meta.id,
            status=SessionStatus.STOPPED,
            label=meta.label or meta.id,
            auto_start=meta.auto_start,
            webhook_url=meta.webhook_url,
            webhook_secret=meta.webhook_secret,
            owner_id=meta.owner_id,
            created_at=meta.created_at,
        )

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, auth: AuthContext | None, session_id: str) -> SessionMeta | None:
        """
        Check that the caller may operate on a session.

        Admins (and internal callers passing no context) are always allowed;
        users only on sessions they own.

        Raises:
            SessionNotFoundError: A user addressed an unknown session
            SessionAccessDeniedError: A user addressed someone else's session
        """
        meta = self.registry.get(session_id)
        if auth is None or auth.is_admin:
            return meta
        if meta is None:
            raise SessionNotFoundError(session_id)
        if meta.owner_id != auth.owner_id:
            raise SessionAccessDeniedError(session_id)
        return meta

    def can_access(self, auth: AuthContext, session_id: str) -> bool:
        """Non-raising ownership check, used by the subscriber bus."""
        try:
            self.authorize(auth, session_id)
        except (SessionNotFoundError, SessionAccessDeniedError):
            return False
        return True

    # ------------------------------------------------------------------
    # Create / stop
    # ------------------------------------------------------------------

    async def create_session(
        self,
        session_id: str | None = None,
        label: str | None = None,
        auto_start: bool | None = None,
        owner_id: str | None = None,
        webhook_url: str | list[str] | None = None,
        webhook_secret: str | list[str] | None = None,
        auth: AuthContext | None = None,
    ) -> SessionView:
        """
        Create and start a session, or return the live one unchanged.

        Metadata is persisted before anything else so the session is listed
        even before the adapter connects.

        Raises:
            SessionAccessDeniedError: A user re-creates someone else's session
            CredentialStoreError: Credential material cannot be loaded
        """
        session_id = session_id or new_session_id()
        if auth is not None and not auth.is_admin:
            existing = self.registry.get(session_id)
            if existing is not None and existing.owner_id != auth.owner_id:
                raise SessionAccessDeniedError(session_id)
            owner_id = auth.owner_id

        async with self._creation_lock(session_id):
            runtime = self._sessions.get(session_id)
            if runtime is not None:
                return runtime.view(self.registry.get(session_id))

            meta = await self.registry.upsert(
                {
                    "id": session_id,
                    "label": label,
                    "auto_start": auto_start,
                    "owner_id": owner_id,
                    "webhook_url": webhook_url,
                    "webhook_secret": webhook_secret,
                }
            )
            credentials = await self.credentials.load(session_id)

            runtime = SessionRuntime(
                id=session_id,
                webhook=self._webhook_for(meta),
                credentials=credentials,
            )
            self._sessions[session_id] = runtime
            self._log(session_id).info(
                f"Session created (fresh credentials: {credentials.is_new})"
            )

            await self._start_connection(runtime)
            return runtime.view(meta)

    @asynccontextmanager
    async def _creation_lock(self, session_id: str) -> AsyncIterator[None]:
        """Per-id creation lock, dropped once nobody holds or awaits it."""
        lock, users = self._create_locks.get(session_id, (None, 0))
        lock = lock or asyncio.Lock()
        self._create_locks[session_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._create_locks[session_id]
            if users <= 1:
                del self._create_locks[session_id]
            else:
                self._create_locks[session_id] = (lock, users - 1)

    async def stop_runtime(self, session_id: str) -> bool:
        """
        Stop a live runtime without touching its credentials or metadata.

        Returns:
            False if no runtime was live
        """
        runtime = self._sessions.pop(session_id, None)
        if runtime is None:
            return False

        runtime.stopped = True
        runtime.status = SessionStatus.STOPPED
        self._cancel_reconnect(runtime)
        self.qr_cache.delete(session_id)

        connection, runtime.connection = runtime.connection, None
        if connection is not None:
            await self._end_connection(session_id, connection)

        event_task = runtime.event_task
        if event_task is not None and event_task is not asyncio.current_task():
            event_task.cancel()

        self._log(session_id).info("Session runtime stopped")
        return True

    async def purge_credentials(self, session_id: str) -> bool:
        """Delete stored credential material; safe whether or not a runtime is live."""
        return await self.credentials.purge(session_id)

    async def stop(
        self,
        session_id: str,
        mode: StopMode | str = StopMode.RUNTIME,
        auth: AuthContext | None = None,
    ) -> dict[str, bool]:
        """
        Administrative teardown.

        Modes: ``runtime`` stops the connection, ``creds`` purges credential
        material, ``meta`` removes the registry record, ``all`` does all
        three in that order.

        Returns:
            Per-step results, e.g. ``{"runtime": True, "creds": True}``
        """
        mode = validate_stop_mode(mode.value if isinstance(mode, StopMode) else mode)
        self.authorize(auth, session_id)

        steps: dict[str, bool] = {}
        if mode in (StopMode.RUNTIME, StopMode.ALL):
            steps["runtime"] = await self.stop_runtime(session_id)
        if mode in (StopMode.CREDS, StopMode.ALL):
            await self.purge_credentials(session_id)
            steps["creds"] = True
        if mode in (StopMode.META, StopMode.ALL):
            await self.registry.remove(session_id)
            steps["meta"] = True
        return steps

    async def bootstrap_all(self) -> int:
        """
        Start every persisted session with auto-start enabled.

        A failing session is logged and skipped.

        Returns:
            Number of sessions started
        """
        started = 0
        for meta in self.registry.list():
            if not meta.auto_start:
                continue
            try:
                await self.create_session(
                    session_id=meta.id,
                    label=meta.label,
                    owner_id=meta.owner_id,
                )
                started += 1
            except Exception as e:
                self._log(meta.id).error(f"Bootstrap failed: {e}")
        self.logger.info(f"Bootstrapped {started} sessions")
        return started

    async def shutdown(self) -> None:
        """Stop every live runtime (credentials and metadata are kept)."""
        for session_id in list(self._sessions):
            await self.stop_runtime(session_id)
        self.logger.info("All session runtimes stopped")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(
        self,
        session_id: str,
        jid: str,
        content: dict[str, Any],
        options: dict[str, Any] | None = None,
        auth: AuthContext | None = None,
    ) -> Any:
        """
        Send raw protocol content through the session's outbound queue.

        Raises:
            SessionNotFoundError: Unknown session
            SessionNotReadyError: Session has no open connection
            Exception: Whatever the adapter raised for this send
        """
        runtime = self._require_runtime(session_id, auth)
        return await self._enqueue(runtime, jid, content, options)

    async def execute_action(
        self,
        session_id: str,
        action: dict[str, Any],
        auth: AuthContext | None = None,
    ) -> Any:
        """
        Build and send one action (REST send route or webhook callback).

        Media is fetched before the send is queued.

        Raises:
            UnsupportedActionError: Unknown action type
            ValueError: Invalid recipient or missing fields
        """
        runtime = self._require_runtime(session_id, auth)
        if self.content_builder is None:
            raise UnsupportedActionError("no content builder configured")
        message = await self.content_builder.build(action)
        if message is None:
            return None
        return await self._enqueue(runtime, message.jid, message.content, message.options)

    def _require_runtime(self, session_id: str, auth: AuthContext | None) -> SessionRuntime:
        meta = self.authorize(auth, session_id)
        runtime = self._sessions.get(session_id)
        if runtime is None:
            if meta is None:
                raise SessionNotFoundError(session_id)
            raise SessionNotReadyError(session_id, SessionStatus.STOPPED.value)
        return runtime

    async def _enqueue(
        self,
        runtime: SessionRuntime,
        jid: str,
        content: dict[str, Any],
        options: dict[str, Any] | None,
    ) -> Any:
        async def task():
            connection = runtime.connection
            if connection is None or runtime.status != SessionStatus.OPEN:
                raise SessionNotReadyError(runtime.id, runtime.status.value)
            return await connection.send(jid, content, options or None)

        return await runtime.queue.push(task)

    # ------------------------------------------------------------------
    # Webhook configuration
    # ------------------------------------------------------------------

    async def configure_webhook(
        self,
        session_id: str,
        url: str | list[str] | None,
        secret: str | list[str] | None = None,
        enabled: bool = True,
        auth: AuthContext | None = None,
    ) -> WebhookTarget:
        """
        Replace a session's webhook target at runtime and persist it.

        ``enabled`` only affects the live runtime.

        Raises:
            SessionNotFoundError: Neither metadata nor a runtime exists
        """
        meta = self.authorize(auth, session_id)
        runtime = self._sessions.get(session_id)
        if meta is None and runtime is None:
            raise SessionNotFoundError(session_id)

        target = WebhookTarget(url=url or "", secret=secret or "", enabled=enabled)
        if runtime is not None:
            runtime.webhook = target
        if meta is not None:
            await self.registry.upsert(
                {"id": session_id, "webhook_url": target.url, "webhook_secret": target.secret}
            )
        self._log(session_id).info(
            f"Webhook configured: targets={len(target.targets)} enabled={enabled}"
        )
        return target

    def set_default_webhook(
        self, url: str | list[str] | None = None, secret: str | list[str] | None = None
    ) -> WebhookTarget:
        """
        Replace the fallback webhook target at runtime.

        Live sessions without a webhook of their own switch to the new
        default immediately, keeping their enabled flag.
        """
        self.default_webhook = WebhookTarget(
            url=self.default_webhook.url if url is None else url,
            secret=self.default_webhook.secret if secret is None else secret,
        )
        for session_id, runtime in self._sessions.items():
            meta = self.registry.get(session_id)
            if meta is not None and not meta.webhook_url:
                runtime.webhook = WebhookTarget(
                    url=self.default_webhook.url,
                    secret=meta.webhook_secret or self.default_webhook.secret,
                    enabled=runtime.webhook.enabled,
                )
        self.logger.info(
            f"Default webhook updated: targets={len(self.default_webhook.targets)}"
        )
        return self.default_webhook

    def _webhook_for(self, meta: SessionMeta) -> WebhookTarget:
        return WebhookTarget(
            url=meta.webhook_url or self.default_webhook.url,
            secret=meta.webhook_secret or self.default_webhook.secret,
        )

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _log(self, session_id: str):
        return get_session_logger(__name__, session_id)

    async def _start_connection(self, runtime: SessionRuntime) -> None:
        """Open a fresh adapter connection and start consuming its events."""
        self._cancel_reconnect(runtime)
        runtime.status = SessionStatus.STARTING
        log = self._log(runtime.id)

        try:
            connection = await self.adapter_factory.connect(runtime.id, runtime.credentials)
        except Exception as e:
            log.error(f"Adapter connect failed: {e}")
            await self._on_closed(runtime, None, ConnectionClosed(reason=str(e)))
            return

        if runtime.stopped:
            await self._end_connection(runtime.id, connection)
            return

        runtime.connection = connection
        runtime.event_task = self.supervisor.spawn(
            self._consume_events(runtime, connection),
            name=f"session-events:{runtime.id}",
        )

    async def _end_connection(self, session_id: str, connection: AdapterConnection) -> None:
        try:
            await connection.end()
        except Exception as e:
            self._log(session_id).warning(f"Error ending adapter connection: {e}")

    async def _consume_events(
        self, runtime: SessionRuntime, connection: AdapterConnection
    ) -> None:
        set_request_context(session_id=runtime.id)
        try:
            async for event in connection.events():
                if runtime.stopped or runtime.connection is not connection:
                    # stale stream from a connection that has been replaced
                    return
                await self._handle_event(runtime, connection, event)
                if isinstance(event, ConnectionClosed):
                    return
            reason = "event stream ended"
        except Exception as e:
            reason = str(e) or type(e).__name__
            self._log(runtime.id).warning(f"Adapter event stream failed: {reason}")

        # stream gone without a close event: treat as a dropped connection
        if runtime.stopped or runtime.connection is not connection:
            return
        await self._end_connection(runtime.id, connection)
        await self._on_closed(runtime, connection, ConnectionClosed(reason=reason))

    async def _handle_event(
        self,
        runtime: SessionRuntime,
        connection: AdapterConnection,
        event: AdapterEvent,
    ) -> None:
        if isinstance(event, QRChallenge):
            await self._on_qr(runtime, event)
        elif isinstance(event, ConnectionOpened):
            await self._on_open(runtime, connection, event)
        elif isinstance(event, ConnectionClosed):
            await self._on_closed(runtime, connection, event)
        elif isinstance(event, CredentialsUpdated):
            await self._on_credentials(runtime, event)
        elif isinstance(event, MessagesReceived):
            self._on_messages(runtime, connection, event)
        else:
            self._log(runtime.id).warning(f"Ignoring unknown adapter event: {event!r}")

    async def _on_qr(self, runtime: SessionRuntime, event: QRChallenge) -> None:
        self.qr_cache.set(runtime.id, event.qr)
        self._log(runtime.id).info("QR challenge received")
        await self._publish(runtime.id, "qr", {"id": runtime.id, "qr": event.qr})

    async def _on_open(
        self,
        runtime: SessionRuntime,
        connection: AdapterConnection,
        event: ConnectionOpened,
    ) -> None:
        me = event.me or connection.user
        runtime.status = SessionStatus.OPEN
        runtime.attempts = 0
        runtime.next_reconnect_delay = None
        runtime.me = me
        runtime.push_name = (me or {}).get("name")
        runtime.last_connected_at = now_ms()
        self.qr_cache.delete(runtime.id)

        self._log(runtime.id).info(f"Connection open as {(me or {}).get('id')}")
        await self._publish(runtime.id, "ready", {"id": runtime.id, "me": me})
        self._deliver(runtime, "session_open", {"id": runtime.id, "me": me})

    async def _on_closed(
        self,
        runtime: SessionRuntime,
        connection: AdapterConnection | None,
        event: ConnectionClosed,
    ) -> None:
        if runtime.stopped:
            return
        if connection is not None and runtime.connection is not connection:
            return
        runtime.connection = None
        log = self._log(runtime.id)

        if event.is_logged_out:
            runtime.status = SessionStatus.LOGGED_OUT
            self.qr_cache.delete(runtime.id)
            log.warning(f"Logged out (code={event.status_code})")
            await self._publish(
                runtime.id, "closed", {"id": runtime.id, "reason": event.status_code}
            )
            if self.relaunch_on_logout:
                self.supervisor.spawn(
                    self._relaunch_after_logout(runtime),
                    name=f"session-relaunch:{runtime.id}",
                )
            return

        runtime.status = SessionStatus.RECONNECTING
        runtime.attempts += 1
        delay = self.reconnection.calculate_delay(runtime.attempts)
        runtime.next_reconnect_delay = delay
        log.info(
            f"Connection closed (code={event.status_code} reason={event.reason}), "
            f"reconnect #{runtime.attempts} in {delay:.2f}s"
        )
        self._schedule_reconnect(runtime, delay)

    async def _on_credentials(self, runtime: SessionRuntime, event: CredentialsUpdated) -> None:
        try:
            await self.credentials.save(runtime.id, event.credentials)
        except Exception as e:
            self._log(runtime.id).error(f"Failed to persist credentials: {e}")
            return
        runtime.credentials = CredentialState(
            session_id=runtime.id, data=event.credentials, is_new=False
        )

    def _on_messages(
        self,
        runtime: SessionRuntime,
        connection: AdapterConnection,
        event: MessagesReceived,
    ) -> None:
        log = self._log(runtime.id)
        for message in event.messages:
            if not should_forward(message):
                continue

            remote_jid = message["key"]["remoteJid"]
            message_type = next(iter(message.get("message") or {}), None)
            log.info(f"Message received from {remote_jid} ({message_type})")
            self._deliver(
                runtime,
                "message_received",
                {"id": runtime.id, "message": message},
            )

            rule = self.auto_reply.reply_for(message)
            if rule is not None:
                self.supervisor.spawn(
                    self._auto_reply(runtime, remote_jid, rule.reply, message if rule.quoted else None),
                    name=f"session-autoreply:{runtime.id}",
                )

    async def _auto_reply(
        self,
        runtime: SessionRuntime,
        jid: str,
        text: str,
        quoted: dict[str, Any] | None,
    ) -> None:
        try:
            await self._enqueue(
                runtime, jid, {"text": text}, {"quoted": quoted} if quoted else None
            )
        except Exception as e:
            self._log(runtime.id).warning(f"Auto-reply failed: {e}")

    # ------------------------------------------------------------------
    # Reconnect and relaunch
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, runtime: SessionRuntime, delay: float) -> None:
        if runtime.reconnect_task is not None and not runtime.reconnect_task.done():
            # one pending attempt per session
            return
        runtime.reconnect_task = self.supervisor.spawn(
            self._reconnect_after(runtime, delay),
            name=f"session-reconnect:{runtime.id}",
        )

    def _cancel_reconnect(self, runtime: SessionRuntime) -> None:
        task, runtime.reconnect_task = runtime.reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect_after(self, runtime: SessionRuntime, delay: float) -> None:
        await self._sleep(delay)
        if runtime.stopped or self._sessions.get(runtime.id) is not runtime:
            return
        runtime.reconnect_task = None
        runtime.next_reconnect_delay = None
        self._log(runtime.id).info(f"Reconnecting (attempt {runtime.attempts})")
        await self._start_connection(runtime)

    async def _relaunch_after_logout(self, runtime: SessionRuntime) -> None:
        """Purge credentials and reconnect from a fresh state (next event is a QR)."""
        await self.credentials.purge(runtime.id)
        runtime.credentials = await self.credentials.load(runtime.id)
        if runtime.stopped:
            return
        runtime.attempts = 0
        self._log(runtime.id).info("Relaunching with fresh credentials after logout")
        await self._start_connection(runtime)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _publish(self, session_id: str, event: str, data: dict[str, Any]) -> None:
        try:
            await self.bus.publish(session_id, event, data)
        except Exception as e:
            self._log(session_id).warning(f"Subscriber bus publish failed ({event}): {e}")

    def _deliver(self, runtime: SessionRuntime, event: str, payload: dict[str, Any]) -> None:
        if self.dispatcher is None or not runtime.webhook.targets:
            return
        self.dispatcher.deliver(
            targets=runtime.webhook.targets,
            secret=runtime.webhook.secret,
            event=event,
            payload=payload,
            action_context=ActionContext(session_id=runtime.id, run=self.execute_action),
        )
