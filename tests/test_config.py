"""Tests for Settings: environment loading, DSN assembly and startup validation."""

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from demo_service.config import Settings
from demo_service.errors import ConfigError


class TestEnvironment:
    def test_reads_env_vars(self, monkeypatch):
        monkeypatch.setenv("DB_USER", "reader")
        monkeypatch.setenv("DB_PASS", "pw")
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.setenv("PORT", "8081")
        s = Settings(_env_file=None)
        assert s.db_user == "reader"
        assert s.db_host == "db.internal"
        assert s.port == 8081

    def test_defaults(self, monkeypatch):
        for var in ("PORT", "DB_NAME", "DB_POOL_MAX", "DB_IDLE_TIMEOUT", "DB_ACQUIRE_TIMEOUT"):
            monkeypatch.delenv(var, raising=False)
        s = Settings(_env_file=None)
        assert s.port == 80
        assert s.db_name == "demo"
        assert s.db_pool_max == 5
        assert s.db_idle_timeout == 60.0
        assert s.db_acquire_timeout == 5.0

    def test_service_name_falls_back_to_app_name(self):
        assert Settings(_env_file=None, app_name="x").service_name == "x"
        assert Settings(_env_file=None, otel_service_name="y").service_name == "y"


class TestDatabaseUrl:
    def test_asyncpg_url(self):
        s = Settings(_env_file=None, db_user="u", db_pass="p", db_host="h", db_name="demo")
        url = s.database_url()
        assert url.drivername == "postgresql+asyncpg"
        assert url.render_as_string(hide_password=False) == "postgresql+asyncpg://u:p@h/demo"

    def test_password_is_escaped(self):
        s = Settings(_env_file=None, db_user="u", db_pass="p@ss/word", db_host="h")
        rendered = s.database_url().render_as_string(hide_password=False)
        assert "p%40ss%2Fword" in rendered

    def test_port(self):
        s = Settings(_env_file=None, db_user="u", db_pass="p", db_host="h", db_port=6432)
        assert s.database_url().port == 6432

    def test_full_url_overrides_parts(self):
        s = Settings(_env_file=None, db_url="sqlite+aiosqlite:////tmp/demo.db", db_host="h")
        url = s.database_url()
        assert url.drivername == "sqlite+aiosqlite"
        assert url.database == "/tmp/demo.db"


class TestValidateStartup:
    def test_missing_values_raise(self):
        s = Settings(_env_file=None, db_user="", db_pass="", db_host="")
        with pytest.raises(ConfigError) as exc_info:
            s.validate_startup()
        msg = str(exc_info.value)
        assert "DB_USER" in msg and "DB_PASS" in msg and "DB_HOST" in msg

    def test_one_missing_value(self):
        s = Settings(_env_file=None, db_user="u", db_pass="p", db_host="")
        with pytest.raises(ConfigError, match="DB_HOST"):
            s.validate_startup()

    def test_full_url_replaces_credentials(self):
        s = Settings(
            _env_file=None,
            db_url="sqlite+aiosqlite:///demo.db",
            db_user="",
            db_pass="",
            db_host="",
            git_commit_hash="abc12345",
        )
        assert s.validate_startup() == []

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)

    def test_complete_config_passes(self):
        s = Settings(
            _env_file=None, db_user="u", db_pass="p", db_host="h", git_commit_hash="abc12345"
        )
        assert s.validate_startup() == []

    def test_warns_without_commit_hash(self):
        s = Settings(_env_file=None, db_user="u", db_pass="p", db_host="h", git_commit_hash="")
        warnings = s.validate_startup()
        assert any("GIT_COMMIT_HASH" in w for w in warnings)

    def test_bad_port(self):
        s = Settings(_env_file=None, db_user="u", db_pass="p", db_host="h", port=70000)
        with pytest.raises(ConfigError, match="PORT"):
            s.validate_startup()
