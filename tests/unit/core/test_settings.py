"""Tests for application settings."""

import pytest

from sinoman.core.config import DEV_SECRET_KEY, RateLimitConfig, Settings, validate_security_settings


def make_settings(**overrides) -> Settings:
    values = dict(_env_file=None, secret_key="s" * 40, environment="test")
    values.update(overrides)
    return Settings(**values)


class TestRateLimitConfig:

    def test_defaults(self):
        settings = make_settings()

        assert settings.rate_limit_config("general") == RateLimitConfig(100, 60_000)
        assert settings.rate_limit_config("auth") == RateLimitConfig(5, 900_000)
        assert settings.rate_limit_config("admin") == RateLimitConfig(30, 60_000)
        assert settings.rate_limit_config("upload") == RateLimitConfig(10, 60_000)

    def test_unknown_context_uses_general(self):
        settings = make_settings(rate_limit_max_requests=7)
        assert settings.rate_limit_config("reports") == RateLimitConfig(7, 60_000)

    def test_environment_override(self, monkeypatch):
        """Budgets can be tuned per deployment through the environment."""
        monkeypatch.setenv("RATE_LIMIT_AUTH_MAX_REQUESTS", "3")
        monkeypatch.setenv("RATE_LIMIT_AUTH_WINDOW_MS", "1000")

        settings = Settings(_env_file=None)

        assert settings.rate_limit_config("auth") == RateLimitConfig(3, 1000)


class TestValidateSecuritySettings:

    def test_valid(self):
        is_valid, errors = validate_security_settings(make_settings())
        assert is_valid
        assert errors == []

    def test_short_secret_key(self):
        is_valid, errors = validate_security_settings(make_settings(secret_key="short"))
        assert not is_valid
        assert any("at least 32 characters" in e for e in errors)

    def test_default_secret_key_in_production(self):
        settings = make_settings(secret_key=DEV_SECRET_KEY, environment="production")

        is_valid, errors = validate_security_settings(settings)

        assert not is_valid
        assert any("development default" in e for e in errors)

    def test_default_secret_key_outside_production(self):
        settings = make_settings(secret_key=DEV_SECRET_KEY, environment="development")
        _, errors = validate_security_settings(settings)
        assert not any("development default" in e for e in errors)

    @pytest.mark.parametrize("overrides,message", [
        ({"audit_retention_days": 0}, "AUDIT_RETENTION_DAYS"),
        ({"log_level": "verbose"}, "Invalid LOG_LEVEL"),
        ({"rate_limit_backend": "memcached"}, "Invalid RATE_LIMIT_BACKEND"),
        ({"rate_limit_upload_window_ms": 0}, "'upload'"),
        ({"rate_limit_admin_max_requests": -1}, "'admin'"),
    ])
    def test_invalid_values(self, overrides, message):
        is_valid, errors = validate_security_settings(make_settings(**overrides))
        assert not is_valid
        assert any(message in e for e in errors)

    def test_warn_is_a_valid_log_level(self):
        is_valid, _ = validate_security_settings(make_settings(log_level="warn"))
        assert is_valid
