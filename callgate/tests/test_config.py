"""
Tests for configuration validation and structured logging helpers.
"""
import json
import logging

import pytest

from callgate.core.config import Settings, validate_config
from callgate.core.logging import JsonFormatter, PrettyFormatter, latency_bucket_ms, request_id_ctx_var


def _settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "sqlite+pysqlite:///:memory:"}
    values.update(overrides)
    return Settings(**values)


def test_valid_config_passes_strict():
    assert validate_config(strict=True, settings_obj=_settings()) is True


def test_missing_database_url_raises_in_strict_mode():
    cfg = _settings()
    cfg.DATABASE_URL = None

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        validate_config(strict=True, settings_obj=cfg)


def test_invalid_quota_warns_when_not_strict(caplog):
    cfg = _settings(TRIAL_PACK_CREDITS=0)
    logger = logging.getLogger("callgate.test_config")

    with caplog.at_level(logging.WARNING, logger="callgate.test_config"):
        assert validate_config(strict=False, settings_obj=cfg, logger=logger) is True

    assert "TRIAL_PACK_CREDITS" in caplog.text


def test_json_formatter_includes_request_id_and_fields():
    record = logging.LogRecord("callgate", logging.INFO, __file__, 1, "[entitlements] computed", None, None)
    record.request_id = "rid-123"
    record.account_id = "acct-9"
    record.can_call = False

    payload = json.loads(JsonFormatter().format(record))

    assert payload["request_id"] == "rid-123"
    assert payload["account_id"] == "acct-9"
    assert payload["can_call"] is False
    assert payload["message"] == "[entitlements] computed"


def test_request_id_context_var_default():
    assert request_id_ctx_var.get() is None


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) == "<10ms"
    assert latency_bucket_ms(250) == "100-500ms"
    assert latency_bucket_ms(2500) == ">=1000ms"


def test_unknown_log_level_is_rejected_in_strict_mode():
    with pytest.raises(RuntimeError, match="LOG_LEVEL"):
        validate_config(strict=True, settings_obj=_settings(LOG_LEVEL="chatty"))


def test_pretty_formatter_appends_structured_fields():
    record = logging.LogRecord("callgate", logging.INFO, __file__, 1, "[accounts] created", None, None)
    record.request_id = None
    record.account_id = "acct-1"
    record.plan = "free"

    line = PrettyFormatter().format(record)

    assert "[callgate]" in line
    assert line.endswith("[accounts] created account_id=acct-1 plan=free")
