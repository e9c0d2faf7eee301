"""Tests for settings and logging setup."""

from __future__ import annotations

import io
import json
import logging
import uuid

import pytest
import structlog
from pydantic import ValidationError

from property_settlement.config import Settings, get_settings
from property_settlement.logging_config import (
    QUIET_LOGGERS,
    get_logger,
    setup_logging,
    setup_logging_from_settings,
)
from property_settlement.services.context import bind_actor


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.is_development
        assert settings.is_sqlite
        assert settings.offer_validity_days == 5
        assert settings.cooling_off_business_days == 5
        assert settings.default_currency == "AUD"

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://localhost/settlement")
        monkeypatch.setenv("JURISDICTION_TIMEZONE", "Australia/Sydney")

        settings = Settings(_env_file=None)

        assert not settings.is_development
        assert not settings.is_sqlite
        assert settings.jurisdiction_tz.key == "Australia/Sydney"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"jurisdiction_timezone": "Mars/Olympus_Mons"},
            {"offer_validity_days": 0},
            {"cooling_off_business_days": -1},
            {"default_currency": "DOLLARS"},
        ],
    )
    def test_rejects_invalid_values(self, overrides) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLogging:
    def test_json_lines_carry_bound_actor(self, restore_logging) -> None:
        stream = io.StringIO()
        setup_logging(log_level="DEBUG", json_logs=True, stream=stream)
        actor = uuid.uuid4()

        with bind_actor(actor):
            get_logger("settlement.test").info("offer.accepted", offer_id="abc-123")

        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["event"] == "offer.accepted"
        assert entry["offer_id"] == "abc-123"
        assert entry["actor_id"] == str(actor)
        assert entry["level"] == "info"

    def test_stdlib_records_use_same_handler(self, restore_logging) -> None:
        stream = io.StringIO()
        setup_logging(log_level="INFO", json_logs=True, stream=stream)

        logging.getLogger("settlement.plain").warning("sweep %s failed", "offers")
        logging.getLogger("settlement.plain").debug("not shown")

        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["event"] == "sweep offers failed"

    def test_noisy_libraries_are_quietened(self, restore_logging) -> None:
        setup_logging(log_level="DEBUG", stream=io.StringIO())

        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    @pytest.mark.parametrize(
        ("app_env", "as_json"), [("production", True), ("development", False)]
    )
    def test_settings_choose_renderer_and_level(
        self, restore_logging, app_env, as_json
    ) -> None:
        stream = io.StringIO()
        settings = Settings(_env_file=None, app_env=app_env, app_log_level="WARNING")
        setup_logging_from_settings(settings, stream=stream)

        logger = get_logger("settlement.settings")
        logger.info("sweep.started")
        logger.warning("sweep.item_failed", offer_id="abc-123")

        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert logging.getLogger().level == logging.WARNING
        if as_json:
            assert json.loads(lines[0])["offer_id"] == "abc-123"
        else:
            assert "sweep.item_failed" in lines[0]
            assert "offer_id=abc-123" in lines[0]
