"""Domain records for sign-ups, subscriptions and staff accounts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BANNED = "banned"


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class User:
    """Represents a landing page sign-up."""

    id: str
    name: str
    email: str
    status: UserStatus
    source: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class UserListing:
    """A user row joined with its latest subscription."""

    id: str
    name: str
    email: str
    status: UserStatus
    created_at: datetime
    updated_at: datetime
    subscription_status: Optional[SubscriptionStatus]
    confirmed_at: Optional[datetime]


@dataclass(frozen=True)
class UserPage:
    users: List[UserListing]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


@dataclass(frozen=True)
class RegisteredUser:
    """Outcome of a successful registration."""

    id: str
    name: str
    email: str
    created_at: datetime
    email_sent: bool = False


@dataclass(frozen=True)
class Admin:
    """Staff account allowed to use the admin panel."""

    id: int
    username: str
    email: str
    role: str
    last_login: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class AdminClaims:
    """Verified contents of an admin session token."""

    id: int
    username: str
    role: str


@dataclass(frozen=True)
class TrendPoint:
    date: date
    count: int


@dataclass(frozen=True)
class AdminStats:
    total_users: int
    users_this_period: int
    users_this_week: int
    users_today: int
    active_users: int
    inactive_users: int
    banned_users: int
    trends: List[TrendPoint] = field(default_factory=list)


@dataclass(frozen=True)
class PublicStats:
    total: int
    weekly: int
    daily: int


__all__ = [
    "Admin",
    "AdminClaims",
    "AdminStats",
    "PublicStats",
    "RegisteredUser",
    "SubscriptionStatus",
    "TrendPoint",
    "User",
    "UserListing",
    "UserPage",
    "UserStatus",
]
