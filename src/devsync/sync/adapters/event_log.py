"""Operational log sinks.

LoggingEventLog writes each (code, severity, message) event through the
"devsync.events" logger and, optionally, appends it to a JSON-lines audit
file that monitoring can tail.

FileMissingDeviceLog appends names that matched no directory object to a
flat file for a human to review. Both files are append-only and written by
a single process.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..domain.entities import EventCode, Severity
from ..domain.ports import IEventLog, IMissingDeviceLog

EVENT_LOGGER_NAME = "devsync.events"

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LoggingEventLog(IEventLog):
    """Event sink backed by the logging module and an optional audit file."""

    def __init__(self, audit_file: Optional[Union[str, Path]] = None):
        self.logger = logging.getLogger(EVENT_LOGGER_NAME)
        self.audit_file = Path(audit_file) if audit_file else None

    def write(self, code: EventCode, severity: Severity, message: str) -> None:
        self.logger.log(_LEVELS[severity], f"[{code.value}] {message}")

        if self.audit_file is None:
            return

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "code": code.value,
            "event": code.name,
            "severity": severity.value,
            "message": message,
        }
        try:
            with self.audit_file.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record) + "\n")
        except OSError as e:
            # Audit write failures are logged, never raised
            self.logger.error(f"Could not write audit log {self.audit_file}: {e}")


class FileMissingDeviceLog(IMissingDeviceLog):
    """Appends unresolved device names to a flat file, one per line."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)

    def record(self, device_name: str, context: str) -> None:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(f"{timestamp}\t{context}\t{device_name}\n")
        except OSError as e:
            self.logger.error(f"Could not record missing device {device_name} in {self.path}: {e}")
