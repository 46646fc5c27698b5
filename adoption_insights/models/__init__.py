"""
Database models
"""

from adoption_insights.models.event import Event
from adoption_insights.models.failed_event import FailedEvent

__all__ = [
    "Event",
    "FailedEvent"
]
