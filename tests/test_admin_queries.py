"""Tests for the admin listing, the aggregate statistics and public stats."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from landing.admin import AdminQueryService
from landing.database import Database, serialize_datetime
from landing.errors import NotFoundError, ValidationError
from landing.filters import FilterBuilder
from landing.models import SubscriptionStatus, UserStatus
from landing.stats import PublicStatsService

NOW = datetime(2026, 10, 17, 15, 30, tzinfo=timezone.utc)


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "landing.sqlite3")
    db.initialize()
    yield db
    db.close()


def add_user(
    database: Database,
    name: str,
    email: str,
    *,
    status: str = "active",
    created_at: datetime = NOW,
    subscription: str | None = "pending",
) -> str:
    user_id = str(uuid.uuid4())
    stamp = serialize_datetime(created_at)
    database.execute(
        "INSERT INTO users (id, name, email, status, source, created_at, updated_at) VALUES (?, ?, ?, ?, 'landing_page', ?, ?)",
        (user_id, name, email, status, stamp, stamp),
    )
    if subscription is not None:
        database.execute(
            "INSERT INTO subscriptions (user_id, subscription_type, status, created_at) VALUES (?, 'free_book', ?, ?)",
            (user_id, subscription, stamp),
        )
    return user_id


def test_filter_builder_keeps_input_in_parameters() -> None:
    filters = FilterBuilder()
    assert filters.where == ""

    filters.contains_any(["u.name", "u.email"], "50%_off")
    filters.add("u.status = ?", "active")

    assert "50%_off" not in filters.where
    assert filters.where.startswith("WHERE (LOWER(u.name) LIKE ?")
    assert filters.parameters == ["%50\\%\\_off%", "%50\\%\\_off%", "active"]

    with pytest.raises(ValueError):
        filters.add("u.id = ?")


def test_listing_filters_by_status_and_search(database: Database) -> None:
    add_user(database, "Ann Lee", "ann.lee@example.com", created_at=NOW - timedelta(hours=3))
    add_user(database, "Joanna Park", "jp@example.com", created_at=NOW - timedelta(hours=2))
    add_user(database, "Bob Stone", "BOB@ANNEX.example.com", created_at=NOW - timedelta(hours=1))
    add_user(database, "Annabel Banned", "annabel@example.com", status="banned")
    add_user(database, "Carl Other", "carl@example.com")

    page = AdminQueryService(database, clock=lambda: NOW).list_users(search="ANN", status="active")

    assert [user.name for user in page.users] == ["Bob Stone", "Joanna Park", "Ann Lee"]
    assert all(user.status is UserStatus.ACTIVE for user in page.users)
    assert page.total == 3
    assert page.pages == 1


def test_listing_paginates_with_total_of_whole_filter(database: Database) -> None:
    for index in range(5):
        add_user(
            database,
            f"User {index}",
            f"user{index}@example.com",
            created_at=NOW - timedelta(minutes=index),
        )

    queries = AdminQueryService(database)
    first = queries.list_users(page=1, limit=2)
    last = queries.list_users(page=3, limit=2)

    assert [user.name for user in first.users] == ["User 0", "User 1"]
    assert [user.name for user in last.users] == ["User 4"]
    assert first.total == last.total == 5
    assert first.pages == 3


def test_listing_joins_latest_subscription(database: Database) -> None:
    user_id = add_user(database, "Sub Scriber", "sub@example.com", subscription="pending")
    database.execute(
        "INSERT INTO subscriptions (user_id, subscription_type, status, confirmed_at, created_at) VALUES (?, 'free_book', 'confirmed', ?, ?)",
        (user_id, serialize_datetime(NOW), serialize_datetime(NOW + timedelta(minutes=1))),
    )
    add_user(database, "No Sub", "nosub@example.com", subscription=None)

    page = AdminQueryService(database).list_users(limit=10)
    by_email = {user.email: user for user in page.users}

    assert page.total == 2
    assert by_email["sub@example.com"].subscription_status is SubscriptionStatus.CONFIRMED
    assert by_email["sub@example.com"].confirmed_at == NOW
    assert by_email["nosub@example.com"].subscription_status is None


def test_listing_rejects_unknown_status(database: Database) -> None:
    with pytest.raises(ValidationError):
        AdminQueryService(database).list_users(status="deleted")


def test_stats_counts_period_and_trend(database: Database) -> None:
    for index in range(3):
        add_user(database, f"Today {index}", f"today{index}@example.com", created_at=NOW - timedelta(minutes=index))
    add_user(database, "Old Timer", "old@example.com", created_at=NOW - timedelta(days=10))

    stats = AdminQueryService(database, clock=lambda: NOW).stats(7)

    assert stats.total_users == 4
    assert stats.users_this_period == 3
    assert stats.users_this_week == 3
    assert stats.users_today == 3
    assert stats.active_users == 4
    assert [(point.date.isoformat(), point.count) for point in stats.trends] == [("2026-10-17", 3)]


def test_stats_trend_omits_empty_days(database: Database) -> None:
    add_user(database, "Day Five", "d5@example.com", created_at=NOW - timedelta(days=5))
    add_user(database, "Day Two A", "d2a@example.com", created_at=NOW - timedelta(days=2))
    add_user(database, "Day Two B", "d2b@example.com", created_at=NOW - timedelta(days=2, hours=1))
    add_user(database, "Banned", "banned@example.com", status="banned", created_at=NOW - timedelta(days=40))

    stats = AdminQueryService(database, clock=lambda: NOW).stats(30)

    assert [(point.date.isoformat(), point.count) for point in stats.trends] == [
        ("2026-10-12", 1),
        ("2026-10-15", 2),
    ]
    assert stats.users_this_period == 3
    assert stats.banned_users == 1
    assert stats.users_today == 0


def test_public_stats_match_admin_active_count(database: Database) -> None:
    add_user(database, "Active Now", "a1@example.com")
    add_user(database, "Active Week", "a2@example.com", created_at=NOW - timedelta(days=3))
    add_user(database, "Active Old", "a3@example.com", created_at=NOW - timedelta(days=30))
    add_user(database, "Inactive Now", "i1@example.com", status="inactive")
    add_user(database, "Banned Now", "b1@example.com", status="banned")

    public = PublicStatsService(database, clock=lambda: NOW).summary()
    admin = AdminQueryService(database, clock=lambda: NOW)

    assert public.total == 3
    assert public.weekly == 2
    assert public.daily == 1
    assert public.total == admin.stats(30).active_users
    assert public.total == admin.list_users(status="active").total


def test_update_user_status_records_audit_entry(database: Database) -> None:
    user_id = add_user(database, "Ban Me", "banme@example.com")
    queries = AdminQueryService(database, clock=lambda: NOW + timedelta(hours=1))

    user = queries.update_user_status(user_id, UserStatus.BANNED, admin_username="admin")

    assert user.status is UserStatus.BANNED
    assert user.updated_at == NOW + timedelta(hours=1)
    log = database.execute("SELECT * FROM system_logs WHERE action = 'user_status_changed'")[0]
    assert json.loads(log["details"]) == {"from": "active", "to": "banned", "admin": "admin"}
    assert queries.get_user(user_id).status is UserStatus.BANNED
    assert queries.get_user("missing") is None

    with pytest.raises(NotFoundError):
        queries.update_user_status("missing", UserStatus.ACTIVE)
