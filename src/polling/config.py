"""Poll cycle configuration.

All settings can be overridden via ``POLLING_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PollingConfig(BaseSettings):
    """Configuration for batch selection and the poll scheduler."""

    model_config = SettingsConfigDict(
        env_prefix="POLLING_",
        case_sensitive=False,
        extra="ignore",
    )

    batch_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Sources fetched per cycle, stalest first",
    )
    interval_seconds: float = Field(
        default=1800.0,
        ge=1.0,
        description="Pause between the end of one cycle and the start of the next",
    )
    max_consecutive_failures: int = Field(
        default=0,
        ge=0,
        description="Drop a source after this many failed fetches in a row (0 = never)",
    )
