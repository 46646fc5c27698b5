"""
Tests for the Postgres query fragments
Queries are compiled against the postgresql dialect; no server is needed
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import column, table
from sqlalchemy.dialects import postgresql

from adoption_insights.core.dates import Grouping
from adoption_insights.models.event import Event
from adoption_insights.services.dialects import PostgresDialect
from adoption_insights.services.event_database import EventDatabase

HOURLY_FORMAT = 'YYYY-MM-DD"T"HH24:00:00"Z"'


def compile_pg(element):
    """SQL text and bound values as Postgres would receive them"""
    compiled = element.compile(dialect=postgresql.dialect())
    return str(compiled), list(compiled.params.values())


@pytest.fixture
def dialect() -> PostgresDialect:
    return PostgresDialect()


@pytest.fixture
def pg_db() -> EventDatabase:
    """Adapter whose queries are captured instead of executed"""
    db = EventDatabase(session_factory=None, dialect=PostgresDialect())
    db._fetch_all = AsyncMock(return_value=[])
    return db


def captured_query(db: EventDatabase):
    return db._fetch_all.await_args.args[0]


@pytest.mark.unit
class TestPostgresDateBuckets:
    """date_trunc buckets rendered in the caller's timezone"""

    @pytest.mark.parametrize("grouping, unit", [
        (Grouping.DAILY, "day"),
        (Grouping.WEEKLY, "week"),
    ])
    def test_day_level_buckets_use_requested_timezone(self, dialect, make_filters, grouping, unit):
        filters = make_filters(date(2025, 3, 1), date(2025, 3, 20), timezone="Asia/Kolkata", grouping=grouping)

        sql, params = compile_pg(dialect.date_bucket(Event.created_at, grouping, filters))

        assert sql.startswith(f"to_char(date_trunc('{unit}', timezone(CAST(")
        assert "AS VARCHAR), events.created_at))" in sql
        assert "Asia/Kolkata" in params
        assert "YYYY-MM-DD" in params

    def test_hourly_bucket_stays_in_utc(self, dialect, make_filters):
        filters = make_filters(date(2025, 3, 1), date(2025, 3, 1), timezone="Asia/Kolkata", grouping=Grouping.HOURLY)

        sql, params = compile_pg(dialect.date_bucket(Event.created_at, Grouping.HOURLY, filters))

        assert sql.startswith("to_char(date_trunc('hour', timezone(CAST(")
        assert "UTC" in params
        assert "Asia/Kolkata" not in params
        assert HOURLY_FORMAT in params

    def test_monthly_bucket_is_clamped_to_range(self, dialect, make_filters):
        filters = make_filters(date(2025, 1, 15), date(2025, 3, 31), timezone="Asia/Kolkata", grouping=Grouping.MONTHLY)

        sql, params = compile_pg(dialect.date_grouping(Event.created_at, filters))

        assert sql.startswith("least(greatest(to_char(date_trunc('month', timezone(CAST(")
        assert "Asia/Kolkata" in params
        assert "2025-01-15" in params
        assert "2025-03-31" in params

    def test_daily_grouping_is_not_clamped(self, dialect, make_filters):
        filters = make_filters(date(2025, 3, 1), date(2025, 3, 5))

        sql, _ = compile_pg(dialect.date_grouping(Event.created_at, filters))

        assert "greatest" not in sql
        assert "least" not in sql

    def test_bucket_start_converts_label_back_from_local_time(self, dialect, make_filters):
        filters = make_filters(date(2025, 3, 1), date(2025, 3, 5), timezone="America/New_York")
        ge = table("ge", column("date"))

        sql, params = compile_pg(dialect.bucket_start(ge.c.date, Grouping.DAILY, filters))

        assert sql.startswith("timezone(CAST(")
        assert "CAST(ge.date AS TIMESTAMP WITHOUT TIME ZONE)" in sql
        assert params == ["America/New_York"]


@pytest.mark.unit
class TestPostgresJsonFragments:
    """JSONB field access and trend aggregation"""

    def test_json_text_uses_arrow_operator(self, dialect):
        sql, _ = compile_pg(dialect.json_text(Event.context, "entityRef"))

        assert sql == "events.context ->> 'entityRef'"

    def test_json_trend_orders_points_by_date(self, dialect):
        t = table("t", column("date"), column("count"))

        sql, _ = compile_pg(dialect.json_trend(t.c.date, t.c.count))

        assert sql == "json_agg(json_build_object('date', t.date, 'count', t.count) ORDER BY t.date)"

    def test_greatest_and_least(self, dialect):
        t = table("t", column("a"), column("b"))

        assert compile_pg(dialect.greatest(t.c.a, t.c.b))[0] == "greatest(t.a, t.b)"
        assert compile_pg(dialect.least(t.c.a, t.c.b))[0] == "least(t.a, t.b)"


@pytest.mark.unit
class TestPostgresAggregateQueries:
    """Full aggregate queries built by the adapter on Postgres"""

    @pytest.mark.asyncio
    async def test_daily_users_query(self, pg_db, make_filters):
        filters = make_filters(date(2025, 3, 1), date(2025, 3, 5), timezone="Europe/Berlin")

        await pg_db.get_daily_users(filters)
        sql, params = compile_pg(captured_query(pg_db))

        assert "to_char(date_trunc('day', timezone(CAST(" in sql
        assert "GROUP BY date, events.user_ref" in sql
        assert "CAST(ge.date AS TIMESTAMP WITHOUT TIME ZONE)" in sql
        assert "Europe/Berlin" in params

    @pytest.mark.asyncio
    async def test_top_plugins_query_aggregates_trend(self, pg_db, make_filters):
        filters = make_filters(date(2025, 1, 15), date(2025, 6, 30), grouping=Grouping.MONTHLY)

        await pg_db.get_top_plugin_views(filters)
        sql, params = compile_pg(captured_query(pg_db))

        assert "least(greatest(to_char(date_trunc('month'" in sql
        assert "json_agg(json_build_object('date', t.date, 'count', t.count) ORDER BY t.date) AS trend" in sql
        assert "2025-01-15" in params
        assert "2025-06-30" in params

    @pytest.mark.asyncio
    async def test_hourly_searches_query_buckets_in_utc(self, pg_db, make_filters):
        filters = make_filters(date(2025, 3, 1), date(2025, 3, 1), timezone="Asia/Tokyo")

        await pg_db.get_top_searches(filters)
        sql, params = compile_pg(captured_query(pg_db))

        assert "date_trunc('hour'" in sql
        assert HOURLY_FORMAT in params
        assert "Asia/Tokyo" not in params

    @pytest.mark.asyncio
    async def test_techdocs_query_reads_entity_from_attributes(self, pg_db, make_filters):
        await pg_db.get_top_techdocs_views(make_filters(date(2025, 3, 1), date(2025, 3, 5)))
        sql, _ = compile_pg(captured_query(pg_db))

        for key in ("kind", "name", "namespace"):
            assert f"coalesce(events.attributes ->> '{key}', %(coalesce_" in sql
