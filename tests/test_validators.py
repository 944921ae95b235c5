"""Tests for input validators and settings."""

from notebypine.config import DATA_DIR, Settings, get_settings
from notebypine.utils.validators import (
    validate_email, validate_limit, validate_query, validate_record_id, validate_title,
)


class TestValidators:

    def test_email(self):
        assert validate_email("ops@example.com") == (True, "")
        assert validate_email("") == (False, "Email is required")
        assert validate_email("ops@localhost") == (False, "Invalid email format")

    def test_title(self):
        assert validate_title("Checkout down") == (True, "")
        assert validate_title("   ") == (False, "Title is required")
        assert validate_title(None) == (False, "Title is required")
        assert validate_title("x" * 201) == (False, "Title must be 200 characters or less")

    def test_query(self):
        assert validate_query("timeout") == (True, "")
        assert validate_query("") == (False, "Query is required")
        assert validate_query("q" * 501)[0] is False

    def test_limit(self):
        assert validate_limit(None) == (True, "")
        assert validate_limit(100) == (True, "")
        assert validate_limit(0) == (False, "Limit must be between 1 and 100")
        assert validate_limit(21, maximum=20) == (False, "Limit must be between 1 and 20")
        assert validate_limit(True) == (False, "Limit must be an integer")
        assert validate_limit("5") == (False, "Limit must be an integer")

    def test_record_id(self):
        assert validate_record_id("abc123def456ghi") == (True, "")
        assert validate_record_id("") == (False, "ID is required")
        assert validate_record_id('x" || 1=1') == (False, "Invalid ID format")


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("DATA_DIR", "JWT_SECRET_KEY", "POCKETBASE_URL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.port == 3000
        assert settings.pocketbase_url == "http://127.0.0.1:8090"
        assert settings.data_path == DATA_DIR
        assert settings.uses_default_secrets is True

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PORT", "8100")
        monkeypatch.setenv("TOOL_RATE_LIMIT", "5")
        monkeypatch.setenv("CORS_ORIGINS", "https://kb.example.com, http://localhost:5173,,")
        settings = Settings(_env_file=None)
        assert settings.port == 8100
        assert settings.tool_rate_limit == 5
        assert settings.cors_origins_list == ["https://kb.example.com", "http://localhost:5173"]
        assert settings.data_path == tmp_path / "out"

    def test_default_admin_password_is_flagged(self, monkeypatch):
        assert Settings(_env_file=None).uses_default_secrets is True
        monkeypatch.setenv("POCKETBASE_ADMIN_PASSWORD", "a-real-password")
        assert Settings(_env_file=None).uses_default_secrets is False

    def test_cached(self):
        assert get_settings() is get_settings()
