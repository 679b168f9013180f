"""Tests for decision logging."""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from admission.app.core.logging import (
    JSONFormatter,
    ContextFilter,
    get_logger,
    get_logging_config,
    get_log_context,
    setup_logging,
)


def decision_record(msg="Rate limit exceeded", level=logging.WARNING, exc_info=None, **context):
    record = logging.LogRecord(
        name="admission.app.services.limiter",
        level=level,
        pathname="limiter.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for name, value in context.items():
        setattr(record, name, value)
    return record


def config_for(log_format, log_level="INFO"):
    with patch("admission.app.core.logging.settings") as mock_settings:
        mock_settings.log_format = log_format
        mock_settings.log_level = log_level
        return get_logging_config()


class TestJSONDecisionRecords:
    """JSON output for decision log records."""

    def test_envelope(self):
        data = json.loads(JSONFormatter().format(decision_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "admission.app.services.limiter"
        assert data["message"] == "Rate limit exceeded"
        assert data["source"] == {"file": "limiter.py", "line": 42, "function": None}
        assert "timestamp" in data

    def test_decision_fields_are_top_level(self):
        record = decision_record(
            key="10.0.0.1", route="POST /login", decision="deny", current=4, max=3, ttl_ms=1000
        )

        data = json.loads(JSONFormatter().format(record))

        assert {k: data[k] for k in ("key", "route", "decision", "current", "max", "ttl_ms")} == {
            "key": "10.0.0.1",
            "route": "POST /login",
            "decision": "deny",
            "current": 4,
            "max": 3,
            "ttl_ms": 1000,
        }
        assert "extra" not in data

    def test_filter_defaults_do_not_leak(self):
        record = decision_record()
        ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert not {"key", "route", "decision", "store"} & data.keys()

    def test_unknown_attributes_go_under_extra(self):
        data = json.loads(JSONFormatter().format(decision_record(scope_count=2)))
        assert data["extra"] == {"scope_count": 2}

    def test_exception_traceback(self):
        try:
            raise RuntimeError("notifier down")
        except RuntimeError:
            record = decision_record("Callback failed", logging.ERROR, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: notifier down" in "".join(data["exception"])


class TestTextFormats:
    """Rendering through the text and structured formatter strings."""

    def render(self, log_format, record):
        fmt = config_for(log_format)["formatters"]
        name = "structured" if log_format == "structured" else "standard"
        ContextFilter().filter(record)
        return logging.Formatter(fmt[name]["format"]).format(record)

    def test_structured_shows_decision_context(self):
        record = decision_record(key="10.0.0.1", route="POST /login", decision="ban", ttl_ms=250)

        line = self.render("structured", record)

        assert line.endswith(
            "Rate limit exceeded - route=POST /login decision=ban key=10.0.0.1 ttl_ms=250"
        )

    def test_structured_without_context_does_not_fail(self):
        line = self.render("structured", decision_record("Registered rate limit"))
        assert "route=None decision=None key=None ttl_ms=None" in line

    def test_text_omits_context(self):
        line = self.render("text", decision_record(key="10.0.0.1", decision="deny"))

        assert line.endswith("WARNING - Rate limit exceeded")
        assert "10.0.0.1" not in line


class TestConfigSelection:
    """Choice of formatter, level and handlers from settings."""

    @pytest.mark.parametrize(
        ("log_format", "formatter"),
        [("text", "standard"), ("structured", "structured"), ("json", "json"), ("JSON", "json")],
    )
    def test_formatter_follows_log_format(self, log_format, formatter):
        config = config_for(log_format)

        assert config["handlers"]["console"]["formatter"] == formatter
        assert config["handlers"]["error_console"]["formatter"] == formatter
        assert ("json" in config["formatters"]) is (formatter == "json")

    def test_levels(self):
        config = config_for("text", "debug")

        assert config["handlers"]["console"]["level"] == "DEBUG"
        assert config["handlers"]["error_console"]["level"] == "ERROR"
        assert config["loggers"]["admission"]["level"] == "DEBUG"
        assert config["loggers"]["admission"]["propagate"] is False

    def test_every_handler_gets_context_filter(self):
        config = config_for("structured")

        for handler in config["handlers"].values():
            assert handler["filters"] == ["context"]


class TestLogContext:
    """get_log_context and get_logger helpers."""

    def test_none_values_dropped(self):
        context = get_log_context(key="10.0.0.1", route=None, decision="allow", store=None, current=0)
        assert context == {"key": "10.0.0.1", "decision": "allow", "current": 0}

    def test_logger_names(self):
        assert get_logger().name == "admission"
        assert get_logger("admission.app.stores.local").name == "admission.app.stores.local"


@pytest.fixture
def restore_logging():
    """Drop handlers bound to the captured streams once the test ends."""
    root, admission = logging.getLogger(), logging.getLogger("admission")
    saved = (root.handlers[:], root.level, admission.handlers[:], admission.level, admission.propagate)
    yield
    root.handlers[:], root.level = saved[0], saved[1]
    admission.handlers[:], admission.level, admission.propagate = saved[2], saved[3], saved[4]


class TestSetupLogging:
    """End to end through dictConfig."""

    def test_json_decision_line_on_stdout(self, capsys, restore_logging):
        with patch("admission.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "INFO"

            setup_logging()
            get_logger("admission.app.services.limiter").warning(
                "Rate limit exceeded",
                extra=get_log_context(key="10.0.0.1", route="global", decision="deny", ttl_ms=900),
            )

            data = json.loads(capsys.readouterr().out.strip())

        assert data["decision"] == "deny"
        assert data["ttl_ms"] == 900
        assert logging.getLogger("redis").level == logging.WARNING
