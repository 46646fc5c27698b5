"""
Monthly partition management for the events table (Postgres only)
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from adoption_insights.core.dates import next_month, seconds_until_next_month
from adoption_insights.core.exceptions import PartitionRetriesExhaustedError
from adoption_insights.services.dialects import DialectStrategy

logger = logging.getLogger(__name__)

OVERLAP_PATTERN = re.compile(r'would overlap partition "events_(\d{4})_(\d{2})"')


def partition_name(year: int, month: int) -> str:
    return f"events_{year}_{month:02d}"


def partition_key(year: int, month: int) -> str:
    return f"{year}_{month}"


def partition_bounds(year: int, month: int) -> Tuple[str, str]:
    """``[first of month, first of next month)`` as ISO dates"""
    end_year, end_month = next_month(year, month)
    return f"{year:04d}-{month:02d}-01", f"{end_year:04d}-{end_month:02d}-01"


def parse_overlap(error: Exception) -> Optional[Tuple[int, int]]:
    """(year, month) of the partition an overlap error points at, if any"""
    match = OVERLAP_PATTERN.search(str(error))
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


class PartitionManager:
    """Creates monthly partitions and repairs overlapping ones"""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def execute_ddl(self, statement: str) -> None:
        async with self.engine.begin() as conn:
            await conn.execute(text(statement))

    async def create_partition(
        self,
        year: int,
        month: int,
        attempts: Optional[Dict[str, int]] = None,
        max_retries: int = 1,
    ) -> None:
        """
        Create the partition for ``year``/``month``.

        When Postgres reports an overlap with another partition, that partition
        is dropped and recreated before the target is tried again. Every key
        shares ``attempts``; a key tried more than ``max_retries`` times raises
        PartitionRetriesExhaustedError. Any other error propagates as is.
        """
        attempts = {} if attempts is None else attempts
        pending: List[Tuple[int, int]] = [(year, month)]

        while pending:
            current_year, current_month = pending[-1]
            key = partition_key(current_year, current_month)

            if attempts.get(key, 0) > max_retries:
                raise PartitionRetriesExhaustedError(key, max_retries)
            attempts[key] = attempts.get(key, 0) + 1

            try:
                await self._create(current_year, current_month)
            except Exception as e:
                conflict = parse_overlap(e)
                if conflict is None:
                    raise
                logger.warning(
                    f"Partition {partition_name(current_year, current_month)} overlaps "
                    f"{partition_name(*conflict)}, recreating it"
                )
                await self.drop_partition(*conflict)
                pending.append(conflict)
                continue

            pending.pop()

    async def _create(self, year: int, month: int) -> None:
        name = partition_name(year, month)
        start, end = partition_bounds(year, month)
        await self.execute_ddl(
            f"CREATE TABLE IF NOT EXISTS {name} PARTITION OF events "
            f"FOR VALUES FROM ('{start}') TO ('{end}')"
        )
        logger.info(f"Partition {name} is ready ({start} to {end})")

    async def drop_partition(self, year: int, month: int) -> None:
        name = partition_name(year, month)
        await self.execute_ddl(f"DROP TABLE IF EXISTS {name} CASCADE")
        logger.info(f"Dropped partition {name}")


class PartitionScheduler:
    """
    Keeps the current month's partition in place: once at startup, then on the
    first of every month at 00:00 UTC
    """

    def __init__(
        self,
        manager: PartitionManager,
        dialect: DialectStrategy,
        max_retries: int = 1,
        timeout: float = 60,
    ):
        self.manager = manager
        self.dialect = dialect
        self.max_retries = max_retries
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        await asyncio.wait_for(
            self.manager.create_partition(now.year, now.month, {}, self.max_retries),
            timeout=self.timeout,
        )

    async def start(self) -> None:
        if not self.dialect.is_partition_supported():
            logger.info(f"Partitions not supported by {self.dialect.name}, scheduler disabled")
            return
        await self.run_once()
        self._task = asyncio.create_task(self._run_monthly(), name="events-partition-scheduler")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _run_monthly(self) -> None:
        while True:
            await asyncio.sleep(seconds_until_next_month() + 1)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Scheduled partition creation failed: {type(e).__name__}: {e}")
