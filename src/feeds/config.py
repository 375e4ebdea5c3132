"""Configuration for the YouTube feed adapter."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedConfig(BaseSettings):
    """Settings for fetching channel feeds."""

    model_config = SettingsConfigDict(
        env_prefix="FEEDS_",
        case_sensitive=False,
        extra="ignore",
    )

    url_template: str = Field(
        default="https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}",
        description="Feed URL with a {channel_id} placeholder",
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Per-request timeout for a single feed fetch",
    )
    user_agent: str = Field(
        default="youtube-notifier/0.1 (RSS Reader)",
        description="User-Agent header sent with feed requests",
    )
