"""
Webhook Dispatcher - delivers session events to webhook endpoints.

Delivery is fire-and-forget for the caller: each event becomes a supervised
background task whose outcome is only logged. Per target URL the dispatcher
signs the envelope, honours the circuit breaker, retries retryable failures
with jittered exponential backoff and, on success, runs any action callbacks
returned in the response body against the originating session.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from wagate.core.config.settings import settings
from wagate.core.logging.logger import get_logger
from wagate.core.tasks import TaskSupervisor

from .circuit import CircuitBreaker
from .signing import sign_payload
from .templating import render_deep

ActionRunner = Callable[[str, dict[str, Any]], Awaitable[Any]]


@dataclass
class WebhookOptions:
    """Delivery tuning; times in seconds."""

    timeout: float = 10.0
    retries: int = 3
    backoff: float = 0.8
    jitter: float = 0.3
    max_backoff: float = 10.0
    action_delay: float = 1.2

    @classmethod
    def from_settings(cls) -> WebhookOptions:
        return cls(
            timeout=settings.webhook_timeout,
            retries=settings.webhook_retries,
            backoff=settings.webhook_backoff_ms / 1000,
            jitter=settings.webhook_jitter_ms / 1000,
            max_backoff=settings.webhook_max_backoff_ms / 1000,
            action_delay=settings.webhook_action_delay_ms / 1000,
        )


@dataclass
class ActionContext:
    """Where action callbacks from a webhook response are executed."""

    session_id: str
    run: ActionRunner


@dataclass
class DeliveryResult:
    """Outcome of delivering one event to one target."""

    target: str
    delivered: bool = False
    skipped: bool = False
    attempts: int = 0
    status: int | None = None
    actions_run: int = 0
    errors: list[str] = field(default_factory=list)


class WebhookDeliveryError(Exception):
    """A single delivery attempt failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        # no status means the request never got an HTTP answer
        if self.status is None:
            return True
        return self.status == 429 or self.status >= 500


def _as_list(value: str | list[str] | None) -> list[str]:
    if isinstance(value, list):
        return [v for v in value if v]
    return [value] if value else []


class WebhookDispatcher:
    """
    Signs, delivers and retries webhook events.

    Usage:
        dispatcher = WebhookDispatcher(http_session, supervisor)
        dispatcher.deliver(
            targets=["https://example.com/hook"],
            secret="s3cret",
            event="message_received",
            payload={"id": "s1", "message": {...}},
            action_context=ActionContext("s1", manager.execute_action),
        )
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        supervisor: TaskSupervisor,
        options: WebhookOptions | None = None,
        circuit: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.http_session = http_session
        self.supervisor = supervisor
        self.options = options or WebhookOptions.from_settings()
        self.circuit = circuit or CircuitBreaker()
        self._sleep = sleep
        self._rand = rand
        self.logger = get_logger(__name__)

    def deliver(
        self,
        targets: str | list[str] | None,
        secret: str | list[str] | None,
        event: str,
        payload: dict[str, Any],
        action_context: ActionContext | None = None,
    ) -> asyncio.Task | None:
        """
        Schedule delivery in the background.

        Returns:
            The supervised task, or None when there is nothing to deliver to
        """
        urls = _as_list(targets)
        if not urls:
            return None
        return self.supervisor.spawn(
            self.deliver_now(urls, secret, event, payload, action_context),
            name=f"webhook:{event}",
        )

    async def deliver_now(
        self,
        targets: str | list[str] | None,
        secret: str | list[str] | None,
        event: str,
        payload: dict[str, Any],
        action_context: ActionContext | None = None,
    ) -> list[DeliveryResult]:
        """
        Deliver one event to every target and wait for the outcome.

        Targets are independent: a failing URL never affects the others.
        """
        urls = _as_list(targets)
        if not urls:
            return []

        secrets = _as_list(secret)
        envelope = {"event": event, "data": payload, "ts": int(time.time() * 1000)}
        body = json.dumps(envelope, separators=(",", ":"), default=str)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(body, secrets[0] if secrets else ""),
            "X-Webhook-Timestamp": str(envelope["ts"]),
            "X-Webhook-Event": event,
        }
        event_id = payload.get("eventId") or payload.get("id")
        if event_id:
            headers["X-Event-Id"] = str(event_id)

        results = await asyncio.gather(
            *(
                self._deliver_to(url, body, headers, envelope, payload, action_context)
                for url in urls
            )
        )
        return list(results)

    def _backoff_delay(self, attempt: int) -> float:
        delay = self.options.backoff * (2 ** (attempt - 1)) + self._rand() * self.options.jitter
        return min(delay, self.options.max_backoff)

    async def _deliver_to(
        self,
        target: str,
        body: str,
        headers: dict[str, str],
        envelope: dict[str, Any],
        payload: dict[str, Any],
        action_context: ActionContext | None,
    ) -> DeliveryResult:
        result = DeliveryResult(target=target)

        if self.circuit.is_open(target):
            self.logger.warning(f"Webhook circuit open, skipping {target}")
            result.skipped = True
            return result

        response_body: Any = None
        while result.attempts <= self.options.retries:
            result.attempts += 1
            try:
                result.status, response_body = await self._post(target, body, headers)
                result.delivered = True
                break
            except WebhookDeliveryError as e:
                result.status = e.status
                result.errors.append(str(e))
                self.logger.warning(
                    f"Webhook delivery failed: target={target} attempt={result.attempts} "
                    f"status={e.status} error={e}"
                )
                if not e.retryable or result.attempts > self.options.retries:
                    break
                await self._sleep(self._backoff_delay(result.attempts))

        if not result.delivered:
            self.circuit.record_failure(target)
            # dead-letter by log only
            self.logger.error(
                f"Webhook permanently failed: target={target} event={envelope['event']} "
                f"attempts={result.attempts}"
            )
            return result

        self.circuit.record_success(target)
        self.logger.debug(
            f"Webhook delivered: target={target} event={envelope['event']} "
            f"attempts={result.attempts}"
        )

        if isinstance(response_body, dict):
            result.actions_run = await self._run_actions(
                response_body, envelope, payload, action_context
            )
        return result

    async def _post(
        self, target: str, body: str, headers: dict[str, str]
    ) -> tuple[int, Any]:
        try:
            async with self.http_session.post(
                target,
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.options.timeout),
            ) as response:
                if response.status >= 400:
                    raise WebhookDeliveryError(
                        f"HTTP {response.status}", status=response.status
                    )
                try:
                    data = await response.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError):
                    data = None
                return response.status, data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise WebhookDeliveryError(f"{type(e).__name__}: {e}") from e

    async def _run_actions(
        self,
        response_body: dict[str, Any],
        envelope: dict[str, Any],
        payload: dict[str, Any],
        action_context: ActionContext | None,
    ) -> int:
        """Execute action callbacks sequentially; returns how many succeeded."""
        actions = response_body.get("actions")
        if not isinstance(actions, list) or not actions:
            return 0
        if action_context is None:
            self.logger.warning("Webhook returned actions but no session context, ignoring")
            return 0

        delay = self.options.action_delay
        if response_body.get("delayMs") is not None:
            try:
                delay = float(response_body["delayMs"]) / 1000
            except (TypeError, ValueError):
                self.logger.warning(f"Invalid delayMs in webhook response: {response_body['delayMs']}")

        context = {**envelope, **payload}
        succeeded = 0
        for index, raw_action in enumerate(actions):
            if index:
                await self._sleep(delay)
            action = render_deep(raw_action, context)
            try:
                await action_context.run(action_context.session_id, action)
                succeeded += 1
            except Exception as e:
                self.logger.warning(
                    f"Webhook action failed: session={action_context.session_id} "
                    f"type={action.get('type') if isinstance(action, dict) else None} error={e}"
                )
        return succeeded
