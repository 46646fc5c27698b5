"""
SQL dialect strategies for the aggregate queries

The aggregation logic lives once in EventDatabase; a strategy only supplies the
fragments that differ per database: date bucketing, JSON field access, JSON
aggregation and the capability flags.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Union

from sqlalchemy import DateTime, String, cast, func, literal, literal_column
from sqlalchemy.dialects.postgresql import aggregate_order_by
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from adoption_insights.core.dates import Grouping, get_zone
from adoption_insights.core.exceptions import ConfigurationError
from adoption_insights.schemas.insights import Filters


class DialectStrategy(ABC):
    """Dialect-specific fragments used by the shared aggregate queries"""

    name: str = ""

    @abstractmethod
    def is_json_supported(self) -> bool:
        ...

    @abstractmethod
    def is_partition_supported(self) -> bool:
        ...

    @abstractmethod
    def is_timezone_supported(self) -> bool:
        ...

    @abstractmethod
    def date_bucket(self, column, grouping: Grouping, filters: Filters) -> ColumnElement:
        """Text label of the bucket ``column`` falls into"""

    @abstractmethod
    def bucket_start(self, label, grouping: Grouping, filters: Filters) -> ColumnElement:
        """Timestamp at which the bucket named by ``label`` begins"""

    @abstractmethod
    def json_text(self, column, key: str) -> ColumnElement:
        ...

    @abstractmethod
    def json_trend(self, date_column, count_column) -> ColumnElement:
        """Aggregate ``(date, count)`` rows into a JSON array of objects"""

    @abstractmethod
    def greatest(self, *args) -> ColumnElement:
        ...

    @abstractmethod
    def least(self, *args) -> ColumnElement:
        ...

    def local_date(self, value: datetime, filters: Filters) -> str:
        """``YYYY-MM-DD`` of ``value`` in the zone the buckets are computed in"""
        zone = get_zone(filters.timezone) if self.is_timezone_supported() else timezone.utc
        return value.astimezone(zone).strftime("%Y-%m-%d")

    def date_grouping(self, column, filters: Filters) -> ColumnElement:
        """
        Bucket label for ``column`` at the filters' grouping.

        Monthly labels are clamped into the requested range so a bucket never
        reports a date outside of it.
        """
        grouping = filters.resolved_grouping
        bucket = self.date_bucket(column, grouping, filters)
        if grouping == Grouping.MONTHLY:
            lower = self.local_date(filters.start_date, filters)
            upper = self.local_date(filters.end_date, filters)
            bucket = self.least(self.greatest(bucket, lower), upper)
        return bucket


class PostgresDialect(DialectStrategy):
    name = "postgresql"

    _TRUNC_UNITS = {
        Grouping.HOURLY: "hour",
        Grouping.DAILY: "day",
        Grouping.WEEKLY: "week",
        Grouping.MONTHLY: "month",
    }

    def is_json_supported(self) -> bool:
        return True

    def is_partition_supported(self) -> bool:
        return True

    def is_timezone_supported(self) -> bool:
        return True

    def _zone_name(self, grouping: Grouping, filters: Filters):
        # Hourly buckets stay in UTC and are shifted for display afterwards
        name = "UTC" if grouping == Grouping.HOURLY else filters.timezone
        return cast(literal(name), String)

    def date_bucket(self, column, grouping: Grouping, filters: Filters) -> ColumnElement:
        unit = literal_column(f"'{self._TRUNC_UNITS[grouping]}'")
        truncated = func.date_trunc(unit, func.timezone(self._zone_name(grouping, filters), column))
        if grouping == Grouping.HOURLY:
            return func.to_char(truncated, 'YYYY-MM-DD"T"HH24:00:00"Z"')
        return func.to_char(truncated, "YYYY-MM-DD")

    def bucket_start(self, label, grouping: Grouping, filters: Filters) -> ColumnElement:
        return func.timezone(self._zone_name(grouping, filters), cast(label, DateTime()))

    def json_text(self, column, key: str) -> ColumnElement:
        return column.op("->>", return_type=String)(literal_column(f"'{key}'"))

    def json_trend(self, date_column, count_column) -> ColumnElement:
        return func.json_agg(
            aggregate_order_by(
                func.json_build_object(
                    literal_column("'date'"), date_column,
                    literal_column("'count'"), count_column,
                ),
                date_column,
            )
        )

    def greatest(self, *args) -> ColumnElement:
        return func.greatest(*args)

    def least(self, *args) -> ColumnElement:
        return func.least(*args)


class SqliteDialect(DialectStrategy):
    name = "sqlite"

    _FORMATS = {
        Grouping.HOURLY: "%Y-%m-%dT%H:00:00Z",
        Grouping.DAILY: "%Y-%m-%d",
        Grouping.MONTHLY: "%Y-%m-01",
    }

    def is_json_supported(self) -> bool:
        return False

    def is_partition_supported(self) -> bool:
        return False

    def is_timezone_supported(self) -> bool:
        return False

    def date_bucket(self, column, grouping: Grouping, filters: Filters) -> ColumnElement:
        if grouping == Grouping.WEEKLY:
            # Monday of the week, matching Postgres' date_trunc('week')
            return func.date(column, "weekday 0", "-6 days")
        return func.strftime(self._FORMATS[grouping], column)

    def bucket_start(self, label, grouping: Grouping, filters: Filters) -> ColumnElement:
        return func.datetime(label)

    def json_text(self, column, key: str) -> ColumnElement:
        return func.json_extract(column, f"$.{key}", type_=String)

    def json_trend(self, date_column, count_column) -> ColumnElement:
        return func.json_group_array(func.json_object("date", date_column, "count", count_column))

    def greatest(self, *args) -> ColumnElement:
        return func.max(*args)

    def least(self, *args) -> ColumnElement:
        return func.min(*args)


_DIALECTS = {
    PostgresDialect.name: PostgresDialect,
    SqliteDialect.name: SqliteDialect,
}


def dialect_for(engine_or_name: Union[AsyncEngine, str]) -> DialectStrategy:
    """Pick the strategy matching an engine (or a SQLAlchemy dialect name)"""
    name = engine_or_name if isinstance(engine_or_name, str) else engine_or_name.dialect.name
    try:
        return _DIALECTS[name]()
    except KeyError:
        raise ConfigurationError(f"Unsupported database dialect: {name}")
