"""Checks file — loads the YAML/JSON daemon configuration into typed models.

JSON is a subset of YAML, so both formats go through ``yaml.safe_load``.
Durations are written the way operators usually write them (``"300ms"``,
``"1m30s"``) or as plain numbers of seconds.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)


# ── Durations ────────────────────────────────────────────────────────────────

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """Convert ``"1m30s"``-style strings or numbers into seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if not text or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return sign * total


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass
class HttpCheckDef:
    """One ``httpChecks`` entry."""

    url: str
    period: float  # seconds
    expected_status_code: int = 200
    timeout: float | None = None
    flex: float = 0.0
    retries: int = 1  # attempts per run


@dataclass
class TwilioConfig:
    account_id: str = ""
    auth_token: str = ""
    sender: str = ""
    receiver: str = ""

    @property
    def complete(self) -> bool:
        return all((self.account_id, self.auth_token, self.sender, self.receiver))


@dataclass
class DaemonConfig:
    """Everything the daemon needs to wire checks to a checker."""

    http_checks: list[HttpCheckDef] = field(default_factory=list)
    report_failures_count: int | None = None
    first_retry_delay: float | None = None
    twilio: TwilioConfig = field(default_factory=TwilioConfig)


# ── Loading ──────────────────────────────────────────────────────────────────


def load_config(text: str) -> DaemonConfig:
    """Parse a checks document from a string."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse configuration: {e}") from e

    if raw is None:
        raise ConfigError("Configuration is empty")
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping")
    return _parse_config(raw)


def load_config_file(path: Path | str) -> DaemonConfig:
    """Read and parse a checks file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot open config file {path}: {e}") from e
    config = load_config(text)
    logger.info("Loaded %d HTTP checks from %s", len(config.http_checks), path)
    return config


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_config(raw: dict[str, Any]) -> DaemonConfig:
    checks = []
    for i, entry in enumerate(raw.get("httpChecks") or []):
        checks.append(_parse_http_check(entry, f"httpChecks[{i}]"))

    count = raw.get("reportFailuresCount")
    if count is not None and (not isinstance(count, int) or isinstance(count, bool) or count < 1):
        raise ConfigError("reportFailuresCount: must be a positive integer")

    first_delay = None
    if raw.get("firstRetryDelay") is not None:
        first_delay = _duration(raw["firstRetryDelay"], "firstRetryDelay")
        if first_delay < 0:
            raise ConfigError("firstRetryDelay: must not be negative")

    raw_twilio = raw.get("twilio") or raw.get("twillio") or {}
    if not isinstance(raw_twilio, dict):
        raise ConfigError("twilio: must be a mapping")
    twilio = TwilioConfig(
        account_id=str(raw_twilio.get("accountId") or ""),
        auth_token=str(raw_twilio.get("authToken") or ""),
        sender=str(raw_twilio.get("from") or ""),
        receiver=str(raw_twilio.get("to") or ""),
    )

    return DaemonConfig(
        http_checks=checks,
        report_failures_count=count,
        first_retry_delay=first_delay,
        twilio=twilio,
    )


def _parse_http_check(raw: Any, where: str) -> HttpCheckDef:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: must be a mapping")

    url = raw.get("url")
    if not url or not isinstance(url, str):
        raise ConfigError(f"{where}.url: required")
    if "period" not in raw:
        raise ConfigError(f"{where}.period: required")

    period = _duration(raw["period"], f"{where}.period")
    if period <= 0:
        raise ConfigError(f"{where}.period: must be positive")
    flex = _duration(raw.get("flex", 0), f"{where}.flex")
    if flex < 0:
        raise ConfigError(f"{where}.flex: must not be negative")
    timeout = None
    if raw.get("timeout"):
        timeout = _duration(raw["timeout"], f"{where}.timeout") or None

    status = raw.get("expectedStatusCode", 200)
    if not isinstance(status, int) or isinstance(status, bool):
        raise ConfigError(f"{where}.expectedStatusCode: must be an integer")
    retries = raw.get("retries", 1)
    if not isinstance(retries, int) or isinstance(retries, bool):
        raise ConfigError(f"{where}.retries: must be an integer")

    return HttpCheckDef(
        url=url,
        period=period,
        expected_status_code=status,
        timeout=timeout,
        flex=flex,
        retries=retries,
    )


def _duration(value: Any, where: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise ConfigError(f"{where}: {e}") from e
