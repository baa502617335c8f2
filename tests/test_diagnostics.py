"""Unit tests for diagnostics sinks and structlog configuration."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog
from structlog.testing import capture_logs

from src.objectsync.config import Settings
from src.objectsync.core.diagnostics import (
    NullDiagnostics,
    RecordingDiagnostics,
    Severity,
    StructlogDiagnostics,
)
from src.objectsync.core.logging import configure_structlog


class TestDiagnostics:
    """Each sink accepts (message, context, severity)."""

    def test_recording_keeps_entries(self):
        sink = RecordingDiagnostics()

        sink.record("collision", {"id": 1})
        sink.record("two matches", severity=Severity.NOTICE)

        assert [e.message for e in sink.entries] == ["collision", "two matches"]
        assert sink.entries[0].severity == Severity.ERROR
        assert [e.message for e in sink.by_severity(Severity.NOTICE)] == ["two matches"]

    def test_structlog_level_follows_severity(self):
        sink = StructlogDiagnostics()

        with capture_logs() as logs:
            sink.record("bad write", {"remote_id": "003A"})
            sink.record("blocked", severity=Severity.WARNING)
            sink.record("fyi", severity=Severity.NOTICE)

        assert [entry["log_level"] for entry in logs] == ["error", "warning", "info"]
        assert logs[0]["event"] == "objectsync.diagnostic"
        assert logs[0]["context"] == {"remote_id": "003A"}
        assert logs[2]["severity"] == "notice"

    def test_null_discards(self):
        assert NullDiagnostics().record("ignored") is None


class TestConfigureStructlog:
    """Root handler setup for structlog and stdlib records."""

    @pytest.fixture
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_production_renders_json(self, restore_logging):
        settings = Settings(_env_file=None, ENVIRONMENT="production", LOG_LEVEL="warning")

        handler = configure_structlog(settings)

        root = logging.getLogger()
        assert root.handlers == [handler]
        assert root.level == logging.WARNING
        assert isinstance(handler.formatter.processors[-1], structlog.processors.JSONRenderer)
        assert structlog.get_config()["wrapper_class"] is structlog.stdlib.BoundLogger

    def test_stdlib_records_share_the_pipeline(self, restore_logging):
        """Library loggers are rendered with level, logger name and timestamp."""
        settings = Settings(_env_file=None, ENVIRONMENT="production", LOG_LEVEL="INFO")
        handler = configure_structlog(settings)
        stream = io.StringIO()
        handler.setStream(stream)

        logging.getLogger("sqlalchemy.engine").warning("pool exhausted")

        entry = json.loads(stream.getvalue())
        assert entry["event"] == "pool exhausted"
        assert entry["level"] == "warning"
        assert entry["logger"] == "sqlalchemy.engine"
        assert "timestamp" in entry

    def test_development_uses_console(self, restore_logging):
        handler = configure_structlog(Settings(_env_file=None, ENVIRONMENT="development"))

        assert isinstance(handler.formatter.processors[-1], structlog.dev.ConsoleRenderer)
