"""HTTP API for landing page sign-ups and the admin panel."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

import anyio
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .admin import MAX_PAGE_SIZE, AdminQueryService
from .config import Settings, ensure_jwt_secret, load_settings
from .database import Database, current_timestamp
from .errors import DatabaseError, LandingError, ValidationError
from .middleware import (
    RequestLogMiddleware,
    SecurityHeadersMiddleware,
    build_rate_limiter,
    client_address,
    rate_limit_exceeded_handler,
)
from .models import AdminClaims, User, UserListing, UserStatus
from .notifications import Notifier, WelcomeMailer
from .registration import RegistrationService, RequestOrigin
from .security import AdminTokenAuth
from .sessions import AdminSessionService
from .stats import PublicStatsService

logger = logging.getLogger("landing.service")

VALIDATION_FAILED_MESSAGE = "Input validation failed"
INTERNAL_ERROR_MESSAGE = "Internal server error"
NOT_FOUND_MESSAGE = "The requested resource could not be found"


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        stripped = value.strip()
        if not 2 <= len(stripped) <= 100:
            raise ValueError("Name must be between 2 and 100 characters")
        return stripped

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RegisteredUserPayload(BaseModel):
    id: str
    name: str
    email: str
    registeredAt: datetime


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    data: RegisteredUserPayload


class PublicStatsPayload(BaseModel):
    total: int
    weekly: int
    daily: int


class PublicStatsResponse(BaseModel):
    success: bool = True
    data: PublicStatsPayload


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=6, max_length=256)

    @field_validator("username")
    @classmethod
    def _normalize_username(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Username must not be empty")
        return stripped


class AdminPayload(BaseModel):
    id: int
    username: str
    role: str
    lastLogin: Optional[datetime] = None


class LoginPayload(BaseModel):
    token: str
    expiresAt: datetime
    admin: AdminPayload


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    data: LoginPayload


class UserListingPayload(BaseModel):
    id: str
    name: str
    email: str
    status: str
    created_at: datetime
    updated_at: datetime
    subscription_status: Optional[str] = None
    confirmed_at: Optional[datetime] = None


class PaginationPayload(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListPayload(BaseModel):
    users: List[UserListingPayload]
    pagination: PaginationPayload


class UserListResponse(BaseModel):
    success: bool = True
    data: UserListPayload


class OverviewPayload(BaseModel):
    total_users: int
    users_this_period: int
    users_this_week: int
    users_today: int
    active_users: int
    inactive_users: int
    banned_users: int


class TrendPayload(BaseModel):
    date: date
    count: int


class AdminStatsPayload(BaseModel):
    period: int
    overview: OverviewPayload
    trends: List[TrendPayload]


class AdminStatsResponse(BaseModel):
    success: bool = True
    data: AdminStatsPayload


class UserStatusRequest(BaseModel):
    status: UserStatus


class UserPayload(BaseModel):
    id: str
    name: str
    email: str
    status: str
    source: str
    created_at: datetime
    updated_at: datetime


class UserResponse(BaseModel):
    success: bool = True
    message: str
    data: UserPayload


class HealthResponse(BaseModel):
    success: bool = True
    status: str
    timestamp: datetime
    uptime: float


def listing_to_payload(user: UserListing) -> UserListingPayload:
    return UserListingPayload(
        id=user.id,
        name=user.name,
        email=user.email,
        status=user.status.value,
        created_at=user.created_at,
        updated_at=user.updated_at,
        subscription_status=user.subscription_status.value if user.subscription_status else None,
        confirmed_at=user.confirmed_at,
    )


def user_to_payload(user: User) -> UserPayload:
    return UserPayload(
        id=user.id,
        name=user.name,
        email=user.email,
        status=user.status.value,
        source=user.source,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _trusted_proxy_hosts(settings: Settings) -> list[str] | str:
    hosts = [host for host in settings.trusted_proxies if host]
    if "*" in hosts:
        return "*"
    # An empty list keeps the socket peer as the client address.
    return hosts


def _error_body(message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def _validation_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": ".".join(location) or "body", "message": message})
    return errors


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Render every failure in the ``{success: false, message}`` envelope."""

    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, errors=exc.errors),
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError) -> JSONResponse:
        logger.error("Database failure handling %s %s: %s", request.method, request.url.path, exc)
        details = None if settings.is_production else exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(INTERNAL_ERROR_MESSAGE, details=details),
        )

    @app.exception_handler(LandingError)
    async def handle_landing_error(_: Request, exc: LandingError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(VALIDATION_FAILED_MESSAGE, errors=_validation_errors(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = NOT_FOUND_MESSAGE if exc.status_code == status.HTTP_404_NOT_FOUND else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        details = None if settings.is_production else str(exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(INTERNAL_ERROR_MESSAGE, details=details),
        )


def register_api_routes(app: FastAPI, *, current_admin: AdminTokenAuth) -> None:
    """Expose the JSON API endpoints under ``/api``."""

    router = APIRouter(prefix="/api")

    def get_registration(request: Request) -> RegistrationService:
        return request.app.state.registration

    def get_sessions(request: Request) -> AdminSessionService:
        return request.app.state.sessions

    def get_admin_queries(request: Request) -> AdminQueryService:
        return request.app.state.admin_queries

    def get_public_stats(request: Request) -> PublicStatsService:
        return request.app.state.public_stats

    @router.get("/health", response_model=HealthResponse)
    async def healthcheck(request: Request) -> HealthResponse:
        return HealthResponse(
            status="OK",
            timestamp=current_timestamp(),
            uptime=round(time.monotonic() - request.app.state.started_at, 3),
        )

    @router.post(
        "/users/register",
        status_code=status.HTTP_201_CREATED,
        response_model=RegisterResponse,
    )
    async def register_user(
        payload: RegisterRequest,
        request: Request,
        registration: RegistrationService = Depends(get_registration),
    ) -> RegisterResponse:
        origin = RequestOrigin(
            ip_address=client_address(request),
            user_agent=request.headers.get("user-agent"),
        )
        # SMTP delivery blocks, keep it off the event loop.
        user = await anyio.to_thread.run_sync(
            lambda: registration.register(payload.name, payload.email, origin)
        )
        return RegisterResponse(
            message="Registration successful! The download link has been sent to your inbox.",
            data=RegisteredUserPayload(
                id=user.id,
                name=user.name,
                email=user.email,
                registeredAt=user.created_at,
            ),
        )

    @router.get("/users/stats", response_model=PublicStatsResponse)
    def public_stats(stats: PublicStatsService = Depends(get_public_stats)) -> PublicStatsResponse:
        summary = stats.summary()
        return PublicStatsResponse(
            data=PublicStatsPayload(total=summary.total, weekly=summary.weekly, daily=summary.daily)
        )

    @router.post("/admin/login", response_model=LoginResponse)
    def admin_login(
        payload: LoginRequest,
        sessions: AdminSessionService = Depends(get_sessions),
    ) -> LoginResponse:
        result = sessions.login(payload.username, payload.password)
        return LoginResponse(
            message="Login successful",
            data=LoginPayload(
                token=result.token,
                expiresAt=result.expires_at,
                admin=AdminPayload(
                    id=result.admin.id,
                    username=result.admin.username,
                    role=result.admin.role,
                    lastLogin=result.admin.last_login,
                ),
            ),
        )

    @router.get("/admin/users", response_model=UserListResponse)
    def list_users(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
        search: str = Query("", max_length=100),
        status_filter: Literal["all", "active", "inactive", "banned"] = Query("all", alias="status"),
        _: AdminClaims = Depends(current_admin),
        queries: AdminQueryService = Depends(get_admin_queries),
    ) -> UserListResponse:
        result = queries.list_users(page=page, limit=limit, search=search, status=status_filter)
        return UserListResponse(
            data=UserListPayload(
                users=[listing_to_payload(user) for user in result.users],
                pagination=PaginationPayload(
                    page=result.page,
                    limit=result.limit,
                    total=result.total,
                    pages=result.pages,
                ),
            )
        )

    @router.get("/admin/stats", response_model=AdminStatsResponse)
    def admin_stats(
        period: int = Query(30, ge=1, le=3650),
        _: AdminClaims = Depends(current_admin),
        queries: AdminQueryService = Depends(get_admin_queries),
    ) -> AdminStatsResponse:
        stats = queries.stats(period)
        return AdminStatsResponse(
            data=AdminStatsPayload(
                period=period,
                overview=OverviewPayload(
                    total_users=stats.total_users,
                    users_this_period=stats.users_this_period,
                    users_this_week=stats.users_this_week,
                    users_today=stats.users_today,
                    active_users=stats.active_users,
                    inactive_users=stats.inactive_users,
                    banned_users=stats.banned_users,
                ),
                trends=[TrendPayload(date=point.date, count=point.count) for point in stats.trends],
            )
        )

    @router.patch("/admin/users/{user_id}/status", response_model=UserResponse)
    def update_user_status(
        user_id: str,
        payload: UserStatusRequest,
        request: Request,
        admin: AdminClaims = Depends(current_admin),
        queries: AdminQueryService = Depends(get_admin_queries),
    ) -> UserResponse:
        user = queries.update_user_status(
            user_id,
            payload.status,
            admin_username=admin.username,
            ip_address=client_address(request),
            user_agent=request.headers.get("user-agent"),
        )
        return UserResponse(message="User status updated", data=user_to_payload(user))

    app.include_router(router)


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application and its process-scoped services."""

    settings = settings or load_settings()
    owns_database = database is None
    if database is None:
        database = Database(
            settings.database_path,
            max_connections=settings.pool_size,
            idle_timeout=settings.idle_timeout,
            acquire_timeout=settings.connect_timeout,
        )
    database.initialize()

    if settings.jwt_secret_generated:
        logger.warning(
            "LANDING_JWT_SECRET is not set; admin tokens are signed with a random key and"
            " will stop working when the process restarts."
        )
    sessions = AdminSessionService(
        database,
        secret=ensure_jwt_secret(settings),
        ttl=timedelta(seconds=settings.jwt_expires_in),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        if owns_database:
            database.close()

    app = FastAPI(
        title="Landing Page Sign-up API",
        version="1.0.0",
        description="Sign-ups, welcome emails and the staff admin panel.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.started_at = time.monotonic()
    app.state.registration = RegistrationService(database, notifier or WelcomeMailer(settings.smtp))
    app.state.sessions = sessions
    app.state.admin_queries = AdminQueryService(database)
    app.state.public_stats = PublicStatsService(database)

    app.state.limiter = build_rate_limiter(
        window=settings.rate_limit_window,
        max_requests=settings.rate_limit_max,
    )
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts(settings))

    register_exception_handlers(app, settings)
    register_api_routes(app, current_admin=AdminTokenAuth(sessions.verify))

    return app


__all__ = ["create_app", "register_api_routes", "register_exception_handlers"]
