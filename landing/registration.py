"""Sign-up workflow: durable insert first, welcome email second."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from .database import Database, Transaction, current_timestamp, serialize_datetime
from .errors import ConflictError, DatabaseError, DeliveryError
from .models import RegisteredUser, SubscriptionStatus, UserStatus
from .notifications import Notifier

logger = logging.getLogger("landing.registration")

REGISTRATION_SOURCE = "landing_page"
SUBSCRIPTION_TYPE = "free_book"
DUPLICATE_EMAIL_MESSAGE = "This email address has already been registered"


@dataclass(frozen=True)
class RequestOrigin:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


class RegistrationService:
    """Register landing page sign-ups.

    Phase one inserts the user, its pending subscription and the audit entry
    in a single transaction. Phase two sends the welcome email and confirms
    the subscription; a failure there is logged and otherwise ignored, so the
    subscription may stay ``pending``.
    """

    def __init__(self, database: Database, notifier: Notifier) -> None:
        self._database = database
        self._notifier = notifier

    def email_exists(self, email: str) -> bool:
        rows = self._database.execute(
            "SELECT id FROM users WHERE email = ?",
            (normalize_email(email),),
        )
        return bool(rows)

    def register(
        self,
        name: str,
        email: str,
        origin: RequestOrigin | None = None,
    ) -> RegisteredUser:
        name = name.strip()
        email = normalize_email(email)
        origin = origin or RequestOrigin()

        if self.email_exists(email):
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE)

        user_id = str(uuid.uuid4())
        created_at = current_timestamp()

        def insert(tx: Transaction) -> None:
            stamp = serialize_datetime(created_at)
            tx.execute(
                """
                INSERT INTO users (id, name, email, status, source, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, name, email, UserStatus.ACTIVE.value, REGISTRATION_SOURCE, stamp, stamp),
            )
            tx.execute(
                """
                INSERT INTO subscriptions (user_id, subscription_type, status, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, SUBSCRIPTION_TYPE, SubscriptionStatus.PENDING.value, stamp),
            )
            tx.execute(
                """
                INSERT INTO system_logs (action, user_id, details, ip_address, user_agent, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    "user_registered",
                    user_id,
                    json.dumps({"name": name, "email": email}, ensure_ascii=False),
                    origin.ip_address,
                    origin.user_agent,
                    stamp,
                ),
            )

        try:
            self._database.run_transaction(insert)
        except DatabaseError as exc:
            if exc.integrity and self.email_exists(email):
                raise ConflictError(DUPLICATE_EMAIL_MESSAGE) from exc
            raise

        email_sent = self._send_welcome(user_id, email, name)
        logger.info("User registered: id=%s email=%s email_sent=%s", user_id, email, email_sent)

        return RegisteredUser(
            id=user_id,
            name=name,
            email=email,
            created_at=created_at,
            email_sent=email_sent,
        )

    def _send_welcome(self, user_id: str, email: str, name: str) -> bool:
        try:
            self._notifier.send_welcome(email, name)
        except DeliveryError as exc:
            logger.error("Welcome email for user %s was not delivered: %s", user_id, exc)
            return False

        try:
            self._database.execute(
                "UPDATE subscriptions SET status = ?, confirmed_at = ? WHERE user_id = ?",
                (
                    SubscriptionStatus.CONFIRMED.value,
                    serialize_datetime(current_timestamp()),
                    user_id,
                ),
            )
        except DatabaseError as exc:
            logger.error("Could not confirm subscription for user %s: %s", user_id, exc)
        return True


__all__ = [
    "DUPLICATE_EMAIL_MESSAGE",
    "REGISTRATION_SOURCE",
    "RegistrationService",
    "RequestOrigin",
    "SUBSCRIPTION_TYPE",
    "normalize_email",
]
