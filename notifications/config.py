"""
Configuration for the notification core.

Settings are read from the environment once, at process start, by
`NotificationSettings.from_env()` and then passed explicitly to the
renderer, the channel senders and the dispatcher. Each field is bound to
its environment variable through its alias; tests build settings directly
by field name or validate a plain mapping.

A missing provider setting is not an error at load time; the channel that
needs it raises ConfigurationMissingError when it is asked to send.
"""

from typing import Any, Mapping, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Explicit configuration object injected into every component."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore", env_ignore_empty=True)

    # Rendering
    brand_name: str = Field(default="Dokkaebi Tennis", alias="NOTIFY_BRAND_NAME", description="Shown in subjects and headers")
    base_url: str = Field(default="", alias="NOTIFY_BASE_URL", description="Public site URL used in links")
    admin_bcc: Optional[str] = Field(default=None, alias="ADMIN_NOTIFY_EMAILS", description="Comma separated admin copies")
    calendar_domain: str = Field(default="dokkaebi-tennis", alias="NOTIFY_CALENDAR_DOMAIN", description="Domain part of calendar UIDs")

    # Email provider
    email_api_url: str = Field(default="https://api.resend.com/emails", alias="EMAIL_API_URL")
    email_api_key: Optional[str] = Field(default=None, alias="EMAIL_API_KEY")
    email_from: Optional[str] = Field(default=None, alias="EMAIL_FROM")

    # SMS gateway
    sms_api_url: Optional[str] = Field(default=None, alias="SMS_API_URL")
    sms_api_key: Optional[str] = Field(default=None, alias="SMS_API_KEY")
    sms_sender: Optional[str] = Field(default=None, alias="SMS_SENDER")

    # Chat webhook
    slack_webhook_url: Optional[str] = Field(default=None, alias="SLACK_WEBHOOK_URL")

    sender_timeout_seconds: float = Field(default=10.0, gt=0, alias="NOTIFY_SENDER_TIMEOUT")
    outbox_url: Optional[str] = Field(
        default=None,
        alias="NOTIFY_OUTBOX_URL",
        description="SQLAlchemy URL or SQLite file path of the outbox; in-memory when unset",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, data: Any) -> Any:
        """`FOO=   ` in a deployment file does not count as configuration."""
        if not isinstance(data, dict):
            return data
        return {
            key: value.strip() if isinstance(value, str) else value
            for key, value in data.items()
            if not (isinstance(value, str) and not value.strip())
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NotificationSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Variables to use instead of the process environment.
                     The process environment is not consulted when given.
        """
        if environ is None:
            return cls()
        return cls.model_validate(dict(environ))


# Environment variable -> settings field
ENV_VARS: dict[str, str] = {
    info.alias: name for name, info in NotificationSettings.model_fields.items()
}
