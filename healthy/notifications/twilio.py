"""SMS notifications through the Twilio Messages API.

Uses the REST endpoint directly via httpx (no Twilio SDK).
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class TwilioNotifier:
    """Texts ``receiver`` from ``sender`` when a task is reported as failing."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        sender: str,
        receiver: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.sender = sender
        self.receiver = receiver
        self._transport = transport

    @property
    def url(self) -> str:
        return TWILIO_MESSAGES_URL.format(sid=self.account_sid)

    async def notify(self, task_name: str, error: BaseException) -> None:
        form = {
            "To": self.receiver,
            "From": self.sender,
            "Body": f"healthy\nNew failure detected for {task_name}\n{error}",
        }
        try:
            async with httpx.AsyncClient(timeout=5, transport=self._transport) as client:
                resp = await client.post(
                    self.url,
                    data=form,
                    auth=(self.account_sid, self.auth_token),
                    headers={"accept": "application/json"},
                )
            if resp.status_code != 201:
                logger.warning("Unexpected Twilio response: %d %s", resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("Cannot post to Twilio: %s", exc)
