"""Services that expose the notifier and drive its poll cycle."""

from src.services.notifier_service import NotifierService
from src.services.poll_service import PollService

__all__ = ["NotifierService", "PollService"]
