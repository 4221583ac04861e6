"""Failure notifications — log line, Slack webhook, Twilio SMS.

The checker awaits ``notify(task_name, error)`` once per failure episode.
Transports handle their own delivery errors (logged, never raised), since
the checker has no way to retry a notification.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Iterable

import httpx

from ..config import Settings
from ..health.checker import Notifier
from ..registry import DaemonConfig
from .twilio import TwilioNotifier

logger = logging.getLogger(__name__)

__all__ = [
    "CompositeNotifier",
    "LogNotifier",
    "SlackNotifier",
    "TwilioNotifier",
    "build_notifier",
]


class LogNotifier:
    """Writes each reported failure to a logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    async def notify(self, task_name: str, error: BaseException) -> None:
        self.log.warning("New failure detected for task %s - %s", task_name, error)


class CompositeNotifier:
    """Fans a notification out to every child notifier concurrently."""

    def __init__(self, notifiers: Iterable[Notifier] = ()) -> None:
        self.notifiers: list[Notifier] = list(notifiers)

    def add(self, notifier: Notifier) -> None:
        self.notifiers.append(notifier)

    async def notify(self, task_name: str, error: BaseException) -> None:
        results = await asyncio.gather(
            *(n.notify(task_name, error) for n in self.notifiers),
            return_exceptions=True,
        )
        for notifier, result in zip(self.notifiers, results):
            if isinstance(result, Exception):
                logger.error(
                    "%s failed to deliver notification: %s",
                    type(notifier).__name__, result,
                )


class SlackNotifier:
    """POSTs failures to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.webhook_url = webhook_url
        self._transport = transport

    async def notify(self, task_name: str, error: BaseException) -> None:
        text = f"🔴 *healthy*\nNew failure detected for `{task_name}`\n{error}"
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.post(self.webhook_url, json={"text": text, "mrkdwn": True})
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("Slack notification failed: %s", exc)


def build_notifier(config: DaemonConfig, settings: Settings) -> CompositeNotifier:
    """Log notifier always; Twilio and Slack when credentials are present.

    Twilio credentials in the checks file take precedence over the
    environment.
    """
    notifier = CompositeNotifier([LogNotifier(logging.getLogger("healthy"))])

    twilio = dataclasses.replace(config.twilio)
    if not twilio.complete:
        twilio.account_id = twilio.account_id or settings.twilio_account_sid
        twilio.auth_token = twilio.auth_token or settings.twilio_auth_token
        twilio.sender = twilio.sender or settings.twilio_from
        twilio.receiver = twilio.receiver or settings.twilio_to
    if twilio.complete:
        notifier.add(
            TwilioNotifier(
                account_sid=twilio.account_id,
                auth_token=twilio.auth_token,
                sender=twilio.sender,
                receiver=twilio.receiver,
            )
        )
        logger.info("Twilio notifier enabled (to=%s)", twilio.receiver)

    if settings.slack_webhook_url:
        notifier.add(SlackNotifier(settings.slack_webhook_url))
        logger.info("Slack notifier enabled")

    return notifier
