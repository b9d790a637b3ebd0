"""
AcademicAlly — Match event publication.

Match events (created / accepted / declined) are handed to an external
notification collaborator.  Publication is fire-and-forget: callers commit the
state change first, then hand the event to ``publish_in_background``.  The
event goes through ``publish_safely``, so a failing publisher is logged and
never undoes the change that triggered it.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from academically.config import get_settings
from academically.models.match import Match

logger = structlog.get_logger("academically.notification_service")

MATCH_CREATED = "match.created"
MATCH_ACCEPTED = "match.accepted"
MATCH_DECLINED = "match.declined"


def match_event_payload(event: str, match: Match) -> dict[str, Any]:
    return {
        "event": event,
        "match_id": str(match.id),
        "user_a_id": str(match.user_a_id),
        "user_b_id": str(match.user_b_id),
        "initiated_by": str(match.initiated_by),
        "status": match.status,
        "compatibility_score": match.compatibility_score,
        "match_reason": match.match_reason,
        "message": match.message,
    }


class MatchEventPublisher:
    """Default publisher: records each event in the structured log."""

    async def on_match_created(self, match: Match) -> None:
        await self.publish(MATCH_CREATED, match)

    async def on_match_accepted(self, match: Match) -> None:
        await self.publish(MATCH_ACCEPTED, match)

    async def on_match_declined(self, match: Match) -> None:
        await self.publish(MATCH_DECLINED, match)

    async def publish(self, event: str, match: Match) -> None:
        payload = match_event_payload(event, match)
        payload["event_name"] = payload.pop("event")
        logger.info("match_event", **payload)


def _is_retryable_http_error(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return isinstance(exc, httpx.TransportError)


class WebhookEventPublisher(MatchEventPublisher):
    """POSTs each event as JSON to a webhook, retrying transient failures.

    Uses exponential backoff: 0.5s initial wait, 2x multiplier, 4s max
    wait, up to 3 attempts.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client
        self.max_attempts = max_attempts

    async def publish(self, event: str, match: Match) -> None:
        payload = match_event_payload(event, match)

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable_http_error),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            reraise=True,
        ):
            with attempt:
                await self._post(payload)

        logger.info("match_event_delivered", event_name=event, match_id=payload["match_id"])

    async def _post(self, payload: dict[str, Any]) -> None:
        if self._client is not None:
            response = await self._client.post(
                self.url, json=payload, timeout=self.timeout_seconds
            )
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


async def publish_safely(
    publisher: MatchEventPublisher,
    event: str,
    match: Match,
) -> None:
    """Dispatch ``event`` for ``match``; log and swallow publisher failures."""
    handlers = {
        MATCH_CREATED: publisher.on_match_created,
        MATCH_ACCEPTED: publisher.on_match_accepted,
        MATCH_DECLINED: publisher.on_match_declined,
    }
    try:
        await handlers[event](match)
    except Exception:
        logger.exception("match_event_publish_failed", event_name=event, match_id=str(match.id))


# Strong references to in-flight deliveries; the event loop only keeps weak ones.
_in_flight: set[asyncio.Task] = set()


def publish_in_background(
    publisher: MatchEventPublisher,
    event: str,
    match: Match,
) -> asyncio.Task:
    """Schedule delivery of ``event`` without waiting for it.

    Call this only after the transaction that produced ``match`` has
    committed, so subscribers never hear about rows they cannot read.
    """
    task = asyncio.create_task(publish_safely(publisher, event, match))
    _in_flight.add(task)
    task.add_done_callback(_in_flight.discard)
    return task


async def drain_events(timeout: float | None = None) -> int:
    """Wait for in-flight deliveries.  Returns how many were still running
    when ``timeout`` elapsed."""
    loop = asyncio.get_running_loop()
    tasks = {task for task in _in_flight if task.get_loop() is loop}
    if not tasks:
        return 0
    _, pending = await asyncio.wait(tasks, timeout=timeout)
    if pending:
        logger.warning("match_events_undelivered", pending=len(pending))
    return len(pending)


def get_event_publisher() -> MatchEventPublisher:
    settings = get_settings()
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookEventPublisher(
            settings.NOTIFICATION_WEBHOOK_URL,
            timeout_seconds=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
    return MatchEventPublisher()
