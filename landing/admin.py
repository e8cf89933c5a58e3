"""Read-mostly queries backing the admin panel."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Callable, List, Optional

from .database import (
    Database,
    Transaction,
    current_timestamp,
    parse_datetime,
    serialize_datetime,
)
from .errors import NotFoundError, ValidationError
from .filters import FilterBuilder
from .models import (
    AdminStats,
    SubscriptionStatus,
    TrendPoint,
    User,
    UserListing,
    UserPage,
    UserStatus,
)
from .stats import window_start

logger = logging.getLogger("landing.admin")

STATUS_ALL = "all"
MAX_PAGE_SIZE = 100


def _row_to_listing(row: sqlite3.Row) -> UserListing:
    subscription_status = row["subscription_status"]
    return UserListing(
        id=str(row["id"]),
        name=str(row["name"]),
        email=str(row["email"]),
        status=UserStatus(row["status"]),
        created_at=parse_datetime(str(row["created_at"])),
        updated_at=parse_datetime(str(row["updated_at"])),
        subscription_status=SubscriptionStatus(subscription_status) if subscription_status else None,
        confirmed_at=parse_datetime(row["confirmed_at"]),
    )


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=str(row["id"]),
        name=str(row["name"]),
        email=str(row["email"]),
        status=UserStatus(row["status"]),
        source=str(row["source"]),
        created_at=parse_datetime(str(row["created_at"])),
        updated_at=parse_datetime(str(row["updated_at"])),
    )


class AdminQueryService:
    """Paginated user listing, aggregate statistics and status changes."""

    def __init__(self, database: Database, *, clock: Callable[[], datetime] = current_timestamp) -> None:
        self._database = database
        self._clock = clock

    def _user_filters(self, search: str, status: str) -> FilterBuilder:
        filters = FilterBuilder()
        search = (search or "").strip()
        if search:
            filters.contains_any(["u.name", "u.email"], search)
        if status and status != STATUS_ALL:
            try:
                UserStatus(status)
            except ValueError as exc:
                raise ValidationError(
                    "Input validation failed",
                    errors=[{"field": "status", "message": f"Unknown status {status!r}"}],
                ) from exc
            filters.add("u.status = ?", status)
        return filters

    def list_users(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        search: str = "",
        status: str = STATUS_ALL,
    ) -> UserPage:
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                "Input validation failed",
                errors=[{"field": "page/limit", "message": f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}"}],
            )

        filters = self._user_filters(search, status)
        rows = self._database.execute(
            f"""
            SELECT
                u.id, u.name, u.email, u.status, u.created_at, u.updated_at,
                s.status AS subscription_status, s.confirmed_at
            FROM users u
            LEFT JOIN subscriptions s ON s.id = (
                SELECT latest.id FROM subscriptions latest
                 WHERE latest.user_id = u.id
                 ORDER BY latest.created_at DESC, latest.id DESC
                 LIMIT 1
            )
            {filters.where}
            ORDER BY u.created_at DESC, u.id
            LIMIT ? OFFSET ?
            """,
            [*filters.parameters, limit, (page - 1) * limit],
        )
        count = self._database.execute(
            f"SELECT COUNT(*) AS total FROM users u {filters.where}",
            filters.parameters,
        )
        return UserPage(
            users=[_row_to_listing(row) for row in rows],
            page=page,
            limit=limit,
            total=int(count[0]["total"]),
        )

    def stats(self, period_days: int = 30) -> AdminStats:
        if period_days < 1:
            raise ValidationError(
                "Input validation failed",
                errors=[{"field": "period", "message": "period must be at least 1 day"}],
            )

        now = self._clock()
        period_start = window_start(period_days, now)
        rows = self._database.execute(
            """
            SELECT
                COUNT(*) AS total_users,
                COALESCE(SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END), 0) AS users_this_period,
                COALESCE(SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END), 0) AS users_this_week,
                COALESCE(SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END), 0) AS users_today,
                COALESCE(SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END), 0) AS active_users,
                COALESCE(SUM(CASE WHEN status = 'inactive' THEN 1 ELSE 0 END), 0) AS inactive_users,
                COALESCE(SUM(CASE WHEN status = 'banned' THEN 1 ELSE 0 END), 0) AS banned_users
            FROM users
            """,
            (period_start, window_start(7, now), window_start(1, now)),
        )
        # Days without sign-ups are omitted rather than zero-filled.
        trend_rows = self._database.execute(
            """
            SELECT substr(created_at, 1, 10) AS day, COUNT(*) AS count
            FROM users
            WHERE created_at >= ?
            GROUP BY day
            ORDER BY day
            """,
            (period_start,),
        )

        overview = rows[0]
        return AdminStats(
            total_users=int(overview["total_users"]),
            users_this_period=int(overview["users_this_period"]),
            users_this_week=int(overview["users_this_week"]),
            users_today=int(overview["users_today"]),
            active_users=int(overview["active_users"]),
            inactive_users=int(overview["inactive_users"]),
            banned_users=int(overview["banned_users"]),
            trends=[
                TrendPoint(date=date.fromisoformat(str(row["day"])), count=int(row["count"]))
                for row in trend_rows
            ],
        )

    def get_user(self, user_id: str) -> Optional[User]:
        rows = self._database.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        if not rows:
            return None
        return _row_to_user(rows[0])

    def update_user_status(
        self,
        user_id: str,
        status: UserStatus,
        *,
        admin_username: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """Change a user's status and record the change in the audit log."""

        status = UserStatus(status)
        stamp = serialize_datetime(self._clock())

        def apply(tx: Transaction) -> List[sqlite3.Row]:
            existing = tx.execute("SELECT status FROM users WHERE id = ?", (user_id,))
            if not existing:
                raise NotFoundError("User not found")
            tx.execute(
                "UPDATE users SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, stamp, user_id),
            )
            tx.execute(
                """
                INSERT INTO system_logs (action, user_id, details, ip_address, user_agent, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    "user_status_changed",
                    user_id,
                    json.dumps(
                        {
                            "from": existing[0]["status"],
                            "to": status.value,
                            "admin": admin_username,
                        }
                    ),
                    ip_address,
                    user_agent,
                    stamp,
                ),
            )
            return tx.execute("SELECT * FROM users WHERE id = ?", (user_id,))

        rows = self._database.run_transaction(apply)
        logger.info("User %s status set to %s by %s", user_id, status.value, admin_username or "unknown")
        return _row_to_user(rows[0])


__all__ = ["AdminQueryService", "MAX_PAGE_SIZE", "STATUS_ALL"]
