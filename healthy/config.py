from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Logging
    log_level: str = "INFO"

    # Checks file (YAML or JSON); empty = read from stdin
    config_file: str = ""

    # Failure policy fallbacks (the checks file wins when it sets them)
    report_failures_count: int = 3
    first_retry_delay: float = 3.0  # seconds

    # Notifications (optional — Twilio SMS / Slack)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from: str = ""
    twilio_to: str = ""
    slack_webhook_url: str = ""


settings = Settings()
