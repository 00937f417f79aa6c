from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from core.models import DeletionOutcome, DeletionReport
from core.utils import bytes_to_gib

SEVERITIES = ('success', 'info', 'failure', 'error')


class EventBus:
    def __init__(
        self,
        *,
        structured_logs: bool,
        dry_run: bool,
        debug_logging: bool,
        logger,
    ) -> None:
        self.structured_logs = structured_logs
        self.dry_run = dry_run
        self.debug_logging = debug_logging
        self.logger = logger

    def log(self, event: str, **fields) -> None:
        payload = {"event": event, **fields}
        if self.dry_run:
            payload.setdefault('dry_run', True)
        try:
            if self.structured_logs:
                self.logger.info(json.dumps(payload, ensure_ascii=False, default=str))
            else:
                self.logger.info(f"{event}: {fields}")
        except Exception:
            self.logger.info(str(payload))


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    severity: str
    message: str

    def format(self) -> str:
        stamp = self.timestamp.astimezone().strftime('%H:%M:%S')
        return f'[{stamp}] {self.severity.upper()}: {self.message}'

    def as_dict(self) -> Dict[str, Any]:
        return {'timestamp': self.timestamp.isoformat(), 'severity': self.severity, 'message': self.message}


class RunLog:
    """Timestamped, severity-tagged log stream for one scan/delete cycle.

    Lines are kept in the order they were produced; every line is also
    forwarded to the event bus as a ``run_log`` event.
    """

    def __init__(self, event_bus: Optional[EventBus] = None, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.event_bus = event_bus
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.entries: List[LogEntry] = []

    def add(self, severity: str, message: str, **fields) -> LogEntry:
        if severity not in SEVERITIES:
            raise ValueError(f'unknown severity: {severity}')
        entry = LogEntry(timestamp=self._clock(), severity=severity, message=message)
        self.entries.append(entry)
        if self.event_bus is not None:
            self.event_bus.log('run_log', severity=severity, message=message, **fields)
        return entry

    def success(self, message: str, **fields) -> LogEntry:
        return self.add('success', message, **fields)

    def info(self, message: str, **fields) -> LogEntry:
        return self.add('info', message, **fields)

    def failure(self, message: str, **fields) -> LogEntry:
        return self.add('failure', message, **fields)

    def error(self, message: str, **fields) -> LogEntry:
        return self.add('error', message, **fields)

    def record(self, outcome: DeletionOutcome) -> LogEntry:
        return self.add(
            outcome.severity,
            outcome.message,
            id=outcome.candidate_id,
            status=outcome.status.value,
        )

    def summarize(self, report: DeletionReport) -> None:
        self.info(
            f'Deletion finished. {report.success_count} of {report.attempted} tasks completed.',
            completed=report.success_count,
            attempted=report.attempted,
        )
        if report.bytes_freed > 0:
            self.info(f'Reclaimed about {bytes_to_gib(report.bytes_freed):.2f} GiB.', bytes_freed=report.bytes_freed)

    def lines(self) -> List[str]:
        return [e.format() for e in self.entries]
