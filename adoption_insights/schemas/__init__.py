"""
Pydantic schemas for request validation
"""

from adoption_insights.schemas.event import (
    AnalyticsContext,
    AnalyticsEventIn,
    EventSchema,
    validate_event
)
from adoption_insights.schemas.insights import (
    Filters,
    InsightsQuery,
    QueryType,
    UserConfig
)

__all__ = [
    "AnalyticsContext",
    "AnalyticsEventIn",
    "EventSchema",
    "validate_event",
    "Filters",
    "InsightsQuery",
    "QueryType",
    "UserConfig"
]
