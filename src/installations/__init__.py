"""Installations: where the bot is installed and which scopes that covers."""

from src.installations.repository import InstallationRepository
from src.installations.schemas import (
    TEXT_PERMISSION,
    ChatScope,
    Installation,
    InstallationLocation,
    Permissions,
    ScopeParseError,
)

__all__ = [
    "ChatScope",
    "Installation",
    "InstallationLocation",
    "InstallationRepository",
    "Permissions",
    "ScopeParseError",
    "TEXT_PERMISSION",
]
