"""Unit tests for environment settings."""

from collections.abc import Iterator

import pytest
from pydantic import ValidationError

from tenantmigrate.config import MigrationSettings, get_settings
from tenantmigrate.models import MigrationConfig


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[None]:
    # Keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestMigrationSettings:
    def test_defaults(self) -> None:
        settings = MigrationSettings()
        assert settings.database_url == "sqlite+aiosqlite:///tenantmigrate.db"
        assert settings.to_alias == ""
        assert settings.poll_interval_seconds == 300.0
        assert settings.enable_tracing is False

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TENANTMIGRATE_FROM_ALIAS", "acme")
        monkeypatch.setenv("TENANTMIGRATE_TO_REGION", "eu")
        monkeypatch.setenv("TENANTMIGRATE_PAGE_SIZE", "250")
        monkeypatch.setenv(
            "TENANTMIGRATE_REGION_DATABASE_URLS", '{"eu": "sqlite+aiosqlite:///eu.db"}'
        )

        settings = MigrationSettings()

        assert settings.from_alias == "acme"
        assert settings.to_region == "eu"
        assert settings.page_size == 250
        assert settings.region_database_urls == {"eu": "sqlite+aiosqlite:///eu.db"}

    def test_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("TENANTMIGRATE_TO_ALIAS=existing\n")
        assert MigrationSettings().to_alias == "existing"

    def test_region_urls_include_home_region(self) -> None:
        settings = MigrationSettings(
            database_url="sqlite+aiosqlite:///home.db",
            region_database_urls={"eu": "sqlite+aiosqlite:///eu.db"},
        )
        assert settings.region_urls() == {
            "": "sqlite+aiosqlite:///home.db",
            "eu": "sqlite+aiosqlite:///eu.db",
        }

    def test_to_config(self) -> None:
        config = MigrationSettings(page_size=10, file_copy_attempts=2, alias_prefix="team").to_config()
        assert isinstance(config, MigrationConfig)
        assert config.page_size == 10
        assert config.file_copy_attempts == 2
        assert config.alias_prefix == "team"

    def test_frozen(self) -> None:
        settings = MigrationSettings()
        with pytest.raises(ValidationError):
            settings.from_alias = "other"  # type: ignore[misc]


class TestGetSettings:
    def test_is_cached(self) -> None:
        assert get_settings() is get_settings()
