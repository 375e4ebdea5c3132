"""Configuration for notification delivery."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationConfig(BaseSettings):
    """Settings for delivering messages through installation gateways."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    message_path: str = Field(
        default="/api/v1/messages",
        description="Path appended to the installation's gateway address",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=60.0,
        description="Per-request timeout for a single delivery",
    )
    api_token: str | None = Field(
        default=None,
        description="Bearer token sent to gateways, if they require one",
    )
    required_permission: str = Field(
        default="Text",
        description="Autonomous message permission needed to notify a scope",
    )
