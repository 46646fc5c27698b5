"""
Insights query schemas
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional
from pydantic import Field, field_validator, model_validator

from adoption_insights.core.dates import (
    Grouping,
    infer_grouping,
    is_valid_timezone,
    to_end_of_day_utc,
    to_start_of_day_utc,
)
from adoption_insights.schemas.base import BaseSchema


class QueryType(str, enum.Enum):
    TOTAL_USERS = "total_users"
    ACTIVE_USERS = "active_users"
    TOP_SEARCHES = "top_searches"
    TOP_PLUGINS = "top_plugins"
    TOP_TECHDOCS = "top_techdocs"
    TOP_TEMPLATES = "top_templates"
    TOP_CATALOG_ENTITIES = "top_catalog_entities"


@dataclass(frozen=True)
class Filters:
    """Query shaping criteria for one request"""
    start_date: datetime
    end_date: datetime
    limit: Optional[int] = None
    kind: Optional[str] = None
    timezone: str = "UTC"
    grouping: Optional[Grouping] = None

    @property
    def resolved_grouping(self) -> Grouping:
        """Explicit override if given, otherwise inferred from the range"""
        if self.grouping:
            return Grouping(self.grouping)
        return infer_grouping(self.start_date, self.end_date)


@dataclass(frozen=True)
class UserConfig:
    licensed_users: int


class InsightsQuery(BaseSchema):
    """Query string accepted by GET /events"""
    type: QueryType
    start_date: date
    end_date: date
    limit: Optional[int] = Field(None, ge=1)
    kind: Optional[str] = None
    timezone: str = "UTC"
    grouping: Optional[Grouping] = None
    format: Literal["json", "csv"] = "json"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def validate_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self

    def to_filters(self) -> Filters:
        return Filters(
            start_date=to_start_of_day_utc(self.start_date, self.timezone),
            end_date=to_end_of_day_utc(self.end_date, self.timezone),
            limit=self.limit,
            kind=self.kind,
            timezone=self.timezone,
            grouping=Grouping(self.grouping) if self.grouping else None,
        )
