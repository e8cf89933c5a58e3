import importlib
import os
import sys
from pathlib import Path

import httpx
import pytest

import main
from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.port == 3001


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_list_users_options() -> None:
    args = _parse_args(["list-users", "--status", "banned", "--search", "ann"])
    assert args.command == "list-users"
    assert args.status == "banned"
    assert args.search == "ann"
    assert args.limit == 20


def test_list_users_rejects_unknown_status() -> None:
    with pytest.raises(SystemExit):
        _parse_args(["list-users", "--status", "deleted"])


@pytest.fixture()
def landing_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for key in list(os.environ):
        if key.startswith("LANDING_"):
            monkeypatch.delenv(key)
    db_path = tmp_path / "landing.sqlite3"
    monkeypatch.setenv("LANDING_DB_PATH", str(db_path))
    monkeypatch.setenv("LANDING_ADMIN_PASSWORD", "seeded-password")
    return db_path


def test_init_db_creates_schema_and_admin(landing_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["init-db"]) == 0
    assert main.main(["init-db"]) == 0

    assert landing_env.exists()
    assert "initialisation complete" in capsys.readouterr().out

    from landing.database import Database

    database = Database(landing_env)
    try:
        rows = database.execute("SELECT username, role FROM admins")
    finally:
        database.close()
    assert [(row["username"], row["role"]) for row in rows] == [("admin", "super_admin")]


def test_list_users_on_empty_database(landing_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.main(["list-users"]) == 0
    assert "No users are currently registered." in capsys.readouterr().out


def test_stats_prints_public_counts(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    requested = []

    def fake_get(url: str, timeout: float) -> httpx.Response:
        requested.append(url)
        return httpx.Response(200, json={"success": True, "data": {"total": 12, "weekly": 5, "daily": 1}})

    monkeypatch.setattr(main.httpx, "get", fake_get)

    assert main.main(["stats", "--service-url", "http://svc:3001/"]) == 0
    assert requested == ["http://svc:3001/api/users/stats"]
    output = capsys.readouterr().out
    assert "Active users: 12" in output
    assert "Last 7 days:  5" in output


def test_stats_reports_unreachable_service(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(url: str, timeout: float) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(main.httpx, "get", refuse)

    assert main.main(["stats"]) == 1


def test_data_layer_commands_import_without_fastapi(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in [module for module in list(sys.modules) if module == "landing" or module.startswith("landing.")]:
        monkeypatch.delitem(sys.modules, name)
    monkeypatch.setitem(sys.modules, "fastapi", None)

    admin = importlib.import_module("landing.admin")

    assert hasattr(admin, "AdminQueryService")
    assert hasattr(sys.modules["landing"], "Database")
    assert "landing.service" not in sys.modules
