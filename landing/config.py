"""Configuration management for the landing page backend."""
from __future__ import annotations

import os
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

ENV_PREFIX = "LANDING_"

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """Convert ``"24h"``/``"30m"``/``"7d"``/``"90"`` into a number of seconds."""

    match = _DURATION_PATTERN.match(str(value))
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit.lower()]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


def default_database_path() -> Path:
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "landing.sqlite3").resolve(strict=False)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return default_database_path()


@dataclass(frozen=True)
class SMTPSettings:
    host: Optional[str] = None
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    timeout: float = 20.0

    @property
    def from_address(self) -> str:
        if self.sender:
            return self.sender
        return f'"Landing Page" <{self.username or "no-reply@localhost"}>'


@dataclass(frozen=True)
class Settings:
    """Process-wide settings resolved once at startup."""

    environment: str = "development"
    database_path: Path = field(default_factory=default_database_path)
    pool_size: int = 20
    idle_timeout: float = 30.0
    connect_timeout: float = 2.0
    log_level: str = "info"
    jwt_secret: str = ""
    jwt_expires_in: int = 24 * 3600
    cors_origins: Tuple[str, ...] = ("http://localhost:3000",)
    rate_limit_window: int = 15 * 60
    rate_limit_max: int = 100
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    admin_username: str = "admin"
    admin_email: str = "admin@example.com"
    admin_password: str = "admin123"
    trusted_proxies: Tuple[str, ...] = ()

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def jwt_secret_generated(self) -> bool:
        return not self.jwt_secret

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from flat, lower-case keyed values."""

        def text(key: str, default: Optional[str] = None) -> Optional[str]:
            value = data.get(key)
            if value is None:
                return default
            stripped = str(value).strip()
            return stripped or default

        def number(key: str, default: float, cast=int):
            raw = data.get(key)
            if raw is None or str(raw).strip() == "":
                return default
            try:
                value = cast(raw)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{ENV_PREFIX}{key.upper()} must be a number, got {raw!r}") from exc
            if value <= 0:
                raise ValueError(f"{ENV_PREFIX}{key.upper()} must be positive, got {raw!r}")
            return value

        def listing(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
            raw = data.get(key)
            if raw is None:
                return default
            if isinstance(raw, (list, tuple)):
                items = [str(item).strip() for item in raw]
            else:
                items = [item.strip() for item in str(raw).split(",")]
            cleaned = tuple(item for item in items if item)
            return cleaned or default

        expires_raw = data.get("jwt_expires_in")
        jwt_expires_in = parse_duration(str(expires_raw)) if expires_raw else 24 * 3600

        smtp = SMTPSettings(
            host=text("smtp_host"),
            port=number("smtp_port", 587),
            username=text("smtp_user"),
            password=text("smtp_password"),
            sender=text("smtp_from"),
        )

        return Settings(
            environment=text("env", "development") or "development",
            database_path=resolve_database_path(text("db_path")),
            pool_size=number("db_pool_size", 20),
            idle_timeout=number("db_idle_timeout", 30.0, float),
            connect_timeout=number("db_connect_timeout", 2.0, float),
            log_level=(text("log_level", "info") or "info").lower(),
            jwt_secret=text("jwt_secret", "") or "",
            jwt_expires_in=jwt_expires_in,
            cors_origins=listing("cors_origin", ("http://localhost:3000",)),
            rate_limit_window=number("rate_limit_window", 15 * 60),
            rate_limit_max=number("rate_limit_max", 100),
            smtp=smtp,
            admin_username=text("admin_username", "admin") or "admin",
            admin_email=(text("admin_email", "admin@example.com") or "admin@example.com").lower(),
            admin_password=text("admin_password", "admin123") or "admin123",
            trusted_proxies=listing("trusted_proxies", ()),
        )


def _read_config_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping of setting names to values")
    return {str(key).strip().lower(): value for key, value in raw.items()}


def _read_environment(environ: Mapping[str, str]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for key, value in environ.items():
        if key.startswith(ENV_PREFIX) and key != f"{ENV_PREFIX}CONFIG":
            values[key[len(ENV_PREFIX):].lower()] = value
    return values


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    config_path: Optional[Path] = None,
) -> Settings:
    """Load settings from an optional YAML file overlaid by ``LANDING_*`` variables."""

    env = os.environ if environ is None else environ
    if config_path is None and env.get(f"{ENV_PREFIX}CONFIG"):
        config_path = Path(env[f"{ENV_PREFIX}CONFIG"]).expanduser()

    values: Dict[str, object] = {}
    if config_path is not None:
        values.update(_read_config_file(config_path))
    values.update(_read_environment(env))
    return Settings.from_dict(values)


def ensure_jwt_secret(settings: Settings) -> str:
    """Return the configured signing secret or a random per-process one."""

    return settings.jwt_secret or secrets.token_urlsafe(48)


__all__ = [
    "SMTPSettings",
    "Settings",
    "ensure_jwt_secret",
    "load_settings",
    "parse_duration",
    "resolve_database_path",
]
