"""
Event database adapter

Write path for the batch processor and the aggregate read queries behind the
insights endpoint. Dialect differences are delegated to a DialectStrategy.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Integer, and_, case, cast, func, insert, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adoption_insights.core.dates import Grouping, convert_to_local_timezone, parse_timestamp
from adoption_insights.core.exceptions import ConfigurationError
from adoption_insights.models.event import Event
from adoption_insights.models.failed_event import FailedEvent
from adoption_insights.schemas.insights import Filters, UserConfig
from adoption_insights.services.dialects import DialectStrategy
from adoption_insights.services.event_model import TrackedEvent

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3


def compute_trend_percentage(first_count: Optional[int], last_count: Optional[int]) -> Optional[float]:
    """Relative change between the first and last bucket; None when the first is 0"""
    if not first_count:
        return None
    return round(((last_count or 0) - first_count) * 100.0 / first_count, 2)


class EventDatabase:
    """
    Aggregate queries and inserts over the events tables.

    Filters and the user config may be passed to each read method directly or
    stored once with set_filters()/set_config(). Instances are cheap; use one
    per request when filters are stored.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], dialect: DialectStrategy):
        self.session_factory = session_factory
        self.dialect = dialect
        self.filters: Optional[Filters] = None
        self.config: Optional[UserConfig] = None

    def set_filters(self, filters: Filters) -> "EventDatabase":
        self.filters = filters
        return self

    def set_config(self, config: UserConfig) -> "EventDatabase":
        self.config = config
        return self

    def is_json_supported(self) -> bool:
        return self.dialect.is_json_supported()

    def is_partition_supported(self) -> bool:
        return self.dialect.is_partition_supported()

    def is_timezone_supported(self) -> bool:
        return self.dialect.is_timezone_supported()

    def ensure_filters_set(self, filters: Optional[Filters] = None) -> Filters:
        filters = filters or self.filters
        if filters is None:
            raise ConfigurationError("Filters must be set using set_filters() before calling methods.")
        return filters

    def ensure_config_set(self, config: Optional[UserConfig] = None) -> UserConfig:
        config = config or self.config
        if config is None:
            raise ConfigurationError("User config must be set using set_config() before calling get_users().")
        return config

    # Write path

    async def insert_events(self, events: Iterable[TrackedEvent]) -> None:
        """Bulk insert in a single transaction; errors are re-raised for retry handling"""
        rows = [self._to_row(event) for event in events]
        if not rows:
            return
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(insert(Event), rows)
            logger.info(f"Successfully inserted {len(rows)} events in bulk")
        except Exception as e:
            logger.error(f"Error inserting batch: {type(e).__name__}: {e}")
            raise

    async def insert_failed_event(self, event_data: str, error_message: str, retry_attempts: int = 0) -> None:
        """Best-effort dead-letter insert; failures are logged, not raised"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(FailedEvent(
                        event_data=event_data,
                        error_message=error_message,
                        retry_attempts=retry_attempts,
                        created_at=datetime.now(timezone.utc),
                    ))
            logger.info(f"Failed event logged: {event_data}")
        except Exception as e:
            logger.error(f"Error inserting failed event: {type(e).__name__}: {e}")

    @staticmethod
    def _to_row(event: TrackedEvent) -> Dict[str, Any]:
        row = {"id": event.id, **event.to_canonical_form()}
        row["created_at"] = parse_timestamp(row["created_at"]) or datetime.now(timezone.utc)
        return row

    # Read path

    async def get_users(self, filters: Optional[Filters] = None, config: Optional[UserConfig] = None) -> Dict:
        filters = self.ensure_filters_set(filters)
        config = self.ensure_config_set(config)

        active = (
            select(Event.user_ref)
            .where(self._in_range(filters))
            .group_by(Event.user_ref)
            .subquery("sub")
        )
        query = select(cast(func.count(), Integer).label("logged_in_users")).select_from(active)

        rows = await self._fetch_all(query)
        rows[0] = {**rows[0], "licensed_users": config.licensed_users}
        return self.get_response_data(rows, filters)

    async def get_daily_users(self, filters: Optional[Filters] = None) -> Dict:
        filters = self.ensure_filters_set(filters)
        grouping = filters.resolved_grouping

        grouped_events = (
            select(self.dialect.date_grouping(Event.created_at, filters).label("date"), Event.user_ref)
            .where(self._in_range(filters))
            .group_by(literal_column("date"), Event.user_ref)
            .subquery("ge")
        )
        first_seen = (
            select(Event.user_ref, func.min(Event.created_at).label("first_seen"))
            .group_by(Event.user_ref)
            .subquery("fs")
        )
        bucket_start = self.dialect.bucket_start(grouped_events.c.date, grouping, filters)

        query = (
            select(
                grouped_events.c.date,
                cast(func.count(), Integer).label("total_users"),
                cast(func.sum(case((first_seen.c.first_seen >= bucket_start, 1), else_=0)), Integer).label("new_users"),
                cast(func.sum(case((first_seen.c.first_seen < bucket_start, 1), else_=0)), Integer).label("returning_users"),
            )
            .select_from(
                grouped_events.outerjoin(first_seen, grouped_events.c.user_ref == first_seen.c.user_ref)
            )
            .group_by(grouped_events.c.date)
            .order_by(grouped_events.c.date)
        )

        rows = await self._fetch_all(query)
        return self.get_response_with_grouping(rows, filters)

    async def get_top_searches(self, filters: Optional[Filters] = None) -> Dict:
        filters = self.ensure_filters_set(filters)

        query = (
            select(
                self.dialect.date_grouping(Event.created_at, filters).label("date"),
                cast(func.count(), Integer).label("count"),
            )
            .where(self._in_range(filters), Event.action == "search")
            .group_by(literal_column("date"))
            .order_by(literal_column("date").asc())
            .limit(filters.limit or DEFAULT_LIMIT)
        )

        rows = await self._fetch_all(query)
        return self.get_response_with_grouping(rows, filters)

    async def get_top_plugin_views(self, filters: Optional[Filters] = None) -> Dict:
        filters = self.ensure_filters_set(filters)
        visits = and_(self._in_range(filters), Event.action == "navigate")

        trend_data = (
            select(
                Event.plugin_id,
                self.dialect.date_grouping(Event.created_at, filters).label("date"),
                cast(func.count(), Integer).label("count"),
            )
            .where(visits)
            .group_by(Event.plugin_id, literal_column("date"))
            .cte("trend_data")
        )
        plugin_counts = (
            select(Event.plugin_id, cast(func.count(), Integer).label("visit_count"))
            .where(visits)
            .group_by(Event.plugin_id)
            .cte("plugin_counts")
        )

        t = trend_data.alias("t")
        td = trend_data.alias("td")

        def edge_count(ordering):
            return (
                select(td.c.count)
                .where(td.c.plugin_id == t.c.plugin_id)
                .order_by(ordering)
                .limit(1)
                .correlate(t)
                .scalar_subquery()
            )

        aggregated = (
            select(
                t.c.plugin_id,
                self.dialect.json_trend(t.c.date, t.c.count).label("trend"),
                func.coalesce(edge_count(td.c.date.asc()), 0).label("first_count"),
                func.coalesce(edge_count(td.c.date.desc()), 0).label("last_count"),
            )
            .group_by(t.c.plugin_id)
            .cte("aggregated_trends")
        )

        query = (
            select(
                plugin_counts.c.plugin_id,
                plugin_counts.c.visit_count,
                aggregated.c.trend,
                aggregated.c.first_count,
                aggregated.c.last_count,
            )
            .select_from(
                plugin_counts.outerjoin(aggregated, plugin_counts.c.plugin_id == aggregated.c.plugin_id)
            )
            .order_by(plugin_counts.c.visit_count.desc())
            .limit(filters.limit or DEFAULT_LIMIT)
        )

        rows = []
        for row in await self._fetch_all(query):
            first_count = row.pop("first_count")
            last_count = row.pop("last_count")
            row["trend"] = self.transform_json(row.get("trend"))
            row["trend_percentage"] = compute_trend_percentage(first_count, last_count)
            rows.append(row)
        return self.get_response_with_grouping(rows, filters, "trend")

    async def get_top_template_views(self, filters: Optional[Filters] = None) -> Dict:
        filters = self.ensure_filters_set(filters)
        count = cast(func.count(), Integer)

        query = (
            select(
                self.dialect.json_text(Event.context, "entityRef").label("entityref"),
                count.label("count"),
                func.max(Event.created_at).label("last_used"),
            )
            .where(
                Event.action == "click",
                Event.subject == "Create",
                Event.plugin_id == "scaffolder",
                self._in_range(filters),
            )
            .group_by(literal_column("entityref"))
            .order_by(count.desc())
            .limit(filters.limit or DEFAULT_LIMIT)
        )

        rows = await self._fetch_all(query)
        return self.get_response_data(rows, filters, "last_used")

    async def get_top_techdocs_views(self, filters: Optional[Filters] = None) -> Dict:
        filters = self.ensure_filters_set(filters)

        query = (
            select(
                cast(func.count(), Integer).label("count"),
                func.max(Event.created_at).label("last_used"),
                *self._entity_columns(coalesce=True),
            )
            .where(
                Event.action == "navigate",
                Event.plugin_id == "techdocs",
                self._in_range(filters),
            )
            .group_by(literal_column("name"), literal_column("kind"), literal_column("namespace"))
            .limit(filters.limit or DEFAULT_LIMIT)
        )

        rows = await self._fetch_all(query)
        return self.get_response_data(rows, filters, "last_used")

    async def get_top_catalog_entities_views(self, filters: Optional[Filters] = None) -> Dict:
        filters = self.ensure_filters_set(filters)
        count = cast(func.count(), Integer)
        kind = self.dialect.json_text(Event.attributes, "kind")

        query = (
            select(
                Event.plugin_id,
                *self._entity_columns(coalesce=False),
                func.max(Event.created_at).label("last_used"),
                count.label("count"),
            )
            .where(
                self._in_range(filters),
                kind.isnot(None),
                Event.action == "navigate",
                Event.plugin_id == "catalog",
            )
            .group_by(Event.plugin_id, literal_column("kind"), literal_column("name"), literal_column("namespace"))
            .order_by(count.desc())
            .limit(filters.limit or DEFAULT_LIMIT)
        )
        if filters.kind:
            query = query.where(kind == filters.kind)

        rows = await self._fetch_all(query)
        return self.get_response_data(rows, filters, "last_used")

    # Helpers

    def _in_range(self, filters: Filters):
        return Event.created_at.between(filters.start_date, filters.end_date)

    def _entity_columns(self, coalesce: bool) -> List:
        columns = []
        for key in ("kind", "name", "namespace"):
            column = self.dialect.json_text(Event.attributes, key)
            if coalesce:
                column = func.coalesce(column, "")
            columns.append(column.label(key))
        return columns

    async def _fetch_all(self, query) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [
                {key: float(value) if isinstance(value, Decimal) else value for key, value in row._mapping.items()}
                for row in result
            ]

    @staticmethod
    def transform_json(value: Any) -> Optional[List[Dict[str, Any]]]:
        """Decode an aggregated JSON column and order its items by date"""
        if value is None:
            return None
        if isinstance(value, (str, bytes)):
            value = json.loads(value)
        return sorted(value, key=lambda item: str(item.get("date")))

    @staticmethod
    def _modify_date(obj: Dict[str, Any], filters: Filters, date_path: str = "date") -> Dict[str, Any]:
        if obj.get(date_path):
            return {**obj, date_path: convert_to_local_timezone(obj[date_path], filters.timezone)}
        return obj

    def _localize(self, row: Dict[str, Any], filters: Filters, date_path: str) -> Dict[str, Any]:
        value = row.get(date_path)
        if isinstance(value, list):
            return {**row, date_path: [self._modify_date(item, filters) for item in value]}
        return self._modify_date(row, filters, date_path)

    def get_response_data(self, rows: List[Dict[str, Any]], filters: Filters, date_path: str = "date") -> Dict:
        return {"data": [self._localize(row, filters, date_path) for row in rows]}

    def get_response_with_grouping(self, rows: List[Dict[str, Any]], filters: Filters, date_path: str = "date") -> Dict:
        """
        Attach the grouping; only hourly buckets are shifted into the caller's
        timezone, day-level labels are already local dates
        """
        grouping = filters.resolved_grouping
        if grouping == Grouping.HOURLY:
            rows = [self._localize(row, filters, date_path) for row in rows]
        return {"grouping": grouping.value, "data": rows}
