import json
import logging

from campus_bot.config import Settings
from campus_bot.logging_config import JSONFormatter, LoggerAdapter, get_logger


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STATE_BACKEND", raising=False)
        settings = Settings(_env_file=None)
        assert settings.state_backend == "redis"
        assert settings.state_ttl_seconds == 48 * 3600
        assert settings.state_key_prefix == "maxbot:user:"
        assert settings.registration_verification_code == "1111"

    def test_environment_overrides(self, mock_env, monkeypatch):
        monkeypatch.setenv("REMINDER_SCAN_INTERVAL_SECONDS", "5")
        settings = Settings(_env_file=None)
        assert settings.state_backend == "memory"
        assert settings.bot_token == "test-token"
        assert settings.openai_api_key == ""
        assert settings.reminder_scan_interval_seconds == 5.0


class TestLogging:
    def test_logger_namespace(self):
        assert get_logger("dispatcher").name == "campus.dispatcher"

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("campus.test", logging.INFO, __file__, 1, "hello %s", ("мир",), None)
        record.context = {"user_id": "u1"}
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "hello мир"
        assert payload["level"] == "INFO"
        assert payload["context"] == {"user_id": "u1"}

    def test_adapter_merges_context(self):
        adapter = LoggerAdapter(get_logger("test"), {"user_id": "u1"})
        msg, kwargs = adapter.process("msg", {"context": {"step": "age"}})
        assert msg == "msg"
        assert kwargs["extra"] == {"context": {"user_id": "u1", "step": "age"}}

    def test_bind_extends_context(self):
        adapter = LoggerAdapter(get_logger("test"), {"user_id": "u1"}).bind(command="/menu")
        assert adapter.extra == {"user_id": "u1", "command": "/menu"}
        _, kwargs = adapter.process("msg", {})
        assert kwargs["extra"]["context"]["command"] == "/menu"
