"""Command-line interface for the landing page backend."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

import httpx

from landing.admin import AdminQueryService
from landing.config import Settings, load_settings
from landing.database import Database
from landing.sessions import seed_admin

logger = logging.getLogger("landing.main")

_DEFAULT_SERVICE_URL = "http://localhost:3001"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Landing page backend utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the schema and seed the admin account")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3001,
        help="Port for the HTTP API (default: 3001)",
    )

    list_parser = subparsers.add_parser("list-users", help="Print registered users")
    list_parser.add_argument("--search", default="", help="Match against name or email")
    list_parser.add_argument(
        "--status",
        default="all",
        choices=["all", "active", "inactive", "banned"],
        help="Only show users with this status",
    )
    list_parser.add_argument("--limit", type=int, default=20, help="Number of users to show")

    stats_parser = subparsers.add_parser("stats", help="Fetch public stats from a running service")
    stats_parser.add_argument(
        "--service-url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of a running service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "list-users", "stats"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(
        settings.database_path,
        max_connections=settings.pool_size,
        idle_timeout=settings.idle_timeout,
        acquire_timeout=settings.connect_timeout,
    )
    database.initialize()
    admin, created = seed_admin(
        database,
        username=settings.admin_username,
        email=settings.admin_email,
        password=settings.admin_password,
    )
    if created:
        logger.info("Created admin account %s <%s>", admin.username, admin.email)
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from landing.service import create_app
    import uvicorn

    logger.info("Starting landing page API on http://%s:%s", host, port)
    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level)


def _list_users(database: Database, *, search: str, status: str, limit: int) -> None:
    result = AdminQueryService(database).list_users(page=1, limit=limit, search=search, status=status)
    if not result.users:
        print("No users are currently registered.")
        return

    print(f"{result.total} user(s) found, showing {len(result.users)}:")
    print(f"{'Name':<24}  {'Email':<32}  {'Status':<8}  {'Subscription':<12}  Created")
    print("-" * 100)
    for user in result.users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        subscription = user.subscription_status.value if user.subscription_status else "-"
        print(f"{user.name:<24}  {user.email:<32}  {user.status.value:<8}  {subscription:<12}  {created}")


def _show_stats(service_url: str) -> int:
    endpoint = service_url.rstrip("/") + "/api/users/stats"
    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact the service: {exc}")
        return 1

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return 1

    data = payload.get("data", {})
    print(f"Active users: {data.get('total', '?')}")
    print(f"Last 7 days:  {data.get('weekly', '?')}")
    print(f"Last day:     {data.get('daily', '?')}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    args = _parse_args(argv)

    if args.command == "stats":
        return _show_stats(args.service_url)

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "list-users":
        _list_users(database, search=args.search, status=args.status, limit=args.limit)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
