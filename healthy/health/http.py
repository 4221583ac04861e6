"""HTTP probe: a GET request that must come back with the expected status."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from ..errors import CheckFailed
from .tasks import RunContext

logger = logging.getLogger(__name__)

CLIENT_TIMEOUT = 20.0  # seconds; upper bound when a check sets no timeout of its own


@dataclass
class HttpCheck:
    """GET ``url`` and compare the response code with ``expected_status_code``."""

    url: str
    expected_status_code: int = 200
    timeout: float | None = None  # seconds
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        # host[:port] only; userinfo must not reach logs or notifications.
        return f"HTTP check for {httpx.URL(self.url).netloc.decode('ascii')}"

    async def run(self, ctx: RunContext) -> None:
        async with httpx.AsyncClient(
            timeout=CLIENT_TIMEOUT, follow_redirects=False, transport=self.transport,
        ) as client:
            try:
                resp = await ctx.guard(client.get(self.url), timeout=self.timeout)
            except (httpx.HTTPError, TimeoutError) as exc:
                raise CheckFailed(
                    f"issues performing a request; details: {str(exc) or type(exc).__name__}"
                ) from exc

        if resp.status_code != self.expected_status_code:
            raise CheckFailed(
                f"response code does not match: expected {self.expected_status_code}, "
                f"got {resp.status_code}"
            )
        logger.debug("%s: %d", self.name, resp.status_code)
