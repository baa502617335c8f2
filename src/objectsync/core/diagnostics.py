"""Diagnostics sink for sync errors and notices.

The ledger and the coordinator report collisions, rejected placeholder ids,
multiple correspondences, blocked records and transport failures here. The
sink is injected, never global:

- StructlogDiagnostics: default, writes each entry as a structured log event
- RecordingDiagnostics: keeps entries in memory (tests, operator reports)
- NullDiagnostics: drops everything
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    NOTICE = "notice"
    INFO = "info"


class Diagnostics(Protocol):
    """Accepts (message, context, severity) entries."""

    def record(
        self,
        message: str,
        context: Any = None,
        severity: Severity = Severity.ERROR,
    ) -> None: ...


@dataclass(frozen=True)
class DiagnosticEntry:
    message: str
    context: Any
    severity: Severity
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StructlogDiagnostics:
    """Writes diagnostics to structlog at a level matching the severity."""

    def __init__(self, event_name: str = "objectsync.diagnostic") -> None:
        self._event_name = event_name

    def record(
        self,
        message: str,
        context: Any = None,
        severity: Severity = Severity.ERROR,
    ) -> None:
        if severity == Severity.ERROR:
            log_method = logger.error
        elif severity == Severity.WARNING:
            log_method = logger.warning
        else:
            log_method = logger.info

        log_method(
            self._event_name,
            message=message,
            context=context,
            severity=severity.value,
        )


class RecordingDiagnostics:
    """Keeps every entry in memory."""

    def __init__(self) -> None:
        self.entries: list[DiagnosticEntry] = []

    def record(
        self,
        message: str,
        context: Any = None,
        severity: Severity = Severity.ERROR,
    ) -> None:
        self.entries.append(DiagnosticEntry(message=message, context=context, severity=severity))

    def by_severity(self, severity: Severity) -> list[DiagnosticEntry]:
        return [entry for entry in self.entries if entry.severity == severity]


class NullDiagnostics:
    """Discards every entry."""

    def record(
        self,
        message: str,
        context: Any = None,
        severity: Severity = Severity.ERROR,
    ) -> None:
        return None
