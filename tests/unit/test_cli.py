"""
Unit tests for the command line entry point.

Tests cover:
- Argument parsing
- init-schema against the default and a named region
- once against an empty request queue
- Wiring of the worker from settings
"""

import json
import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from tenantmigrate.__main__ import build_parser, build_worker, main
from tenantmigrate.config import MigrationSettings, get_settings
from tenantmigrate.stores import StoreFactory


def table_names(path: Path) -> set[str]:
    with sqlite3.connect(path) as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {name for (name,) in rows}


@pytest.fixture(autouse=True)
def environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    monkeypatch.chdir(tmp_path)
    for name in ("DATABASE_URL", "REGION_DATABASE_URLS", "STORAGE_ROOT", "WORK_DIR", "FROM_ALIAS", "TO_REGION"):
        monkeypatch.delenv(f"TENANTMIGRATE_{name}", raising=False)
    monkeypatch.setenv("TENANTMIGRATE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'home.db'}")
    monkeypatch.setenv(
        "TENANTMIGRATE_REGION_DATABASE_URLS",
        json.dumps({"eu": f"sqlite+aiosqlite:///{tmp_path / 'eu.db'}"}),
    )
    monkeypatch.setenv("TENANTMIGRATE_STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("TENANTMIGRATE_WORK_DIR", str(tmp_path / "backups"))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestParser:
    def test_commands(self) -> None:
        parser = build_parser()
        assert parser.parse_args(["worker"]).command == "worker"
        assert parser.parse_args(["once"]).command == "once"

        args = parser.parse_args(["init-schema", "--region", "eu"])
        assert args.command == "init-schema"
        assert args.region == "eu"
        assert parser.parse_args(["init-schema"]).region == ""

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    def test_init_schema_default_region(self, environment: Path) -> None:
        assert main(["init-schema"]) == 0

        tables = table_names(environment / "home.db")
        assert {"tenants_tenants", "core_user", "files_file", "migration_requests"} <= tables
        assert not (environment / "eu.db").exists()

    def test_init_schema_named_region(self, environment: Path) -> None:
        assert main(["init-schema", "--region", "eu"]) == 0
        assert "webstudio_settings" in table_names(environment / "eu.db")

    def test_once_with_empty_queue(self, environment: Path) -> None:
        assert main(["init-schema"]) == 0
        assert main(["once"]) == 0


class TestBuildWorker:
    @pytest.mark.asyncio
    async def test_worker_uses_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TENANTMIGRATE_FROM_ALIAS", "acme")
        monkeypatch.setenv("TENANTMIGRATE_TO_REGION", "eu")
        monkeypatch.setenv("TENANTMIGRATE_POLL_INTERVAL_SECONDS", "5")
        settings = MigrationSettings()
        stores = StoreFactory(settings.region_urls())

        worker = build_worker(settings, stores)

        assert worker.from_alias == "acme"
        assert worker.to_region == "eu"
        assert worker.to_alias == ""
        assert worker.poll_interval_seconds == 5.0
        assert not worker.is_running
        await stores.dispose()
