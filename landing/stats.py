"""Unauthenticated sign-up counters shown on the landing page."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from .database import Database, current_timestamp, serialize_datetime
from .models import PublicStats, UserStatus


def window_start(days: int, now: datetime) -> str:
    """Serialized start of a window covering today plus the previous ``days`` days."""

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return serialize_datetime(midnight - timedelta(days=days))


class PublicStatsService:
    def __init__(self, database: Database, *, clock: Callable[[], datetime] = current_timestamp) -> None:
        self._database = database
        self._clock = clock

    def summary(self) -> PublicStats:
        now = self._clock()
        rows = self._database.execute(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END), 0) AS weekly,
                COALESCE(SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END), 0) AS daily
            FROM users
            WHERE status = ?
            """,
            (window_start(7, now), window_start(1, now), UserStatus.ACTIVE.value),
        )
        row = rows[0]
        return PublicStats(total=int(row["total"]), weekly=int(row["weekly"]), daily=int(row["daily"]))


__all__ = ["PublicStatsService", "window_start"]
