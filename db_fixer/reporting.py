"""
Console reporting and the optional run log.

Rules receive a reporter as an explicit argument and use it for progress and
summary lines only; their findings travel back to the runner as return values.
The run log is owned by the runner: it is opened before the first rule and
closed after the last one.
"""
from __future__ import annotations

import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import IO, List, Optional, TextIO


class Severity(Enum):
    INFO = "INFO"
    NOTE = "NOTE"
    SUCCESS = "OK"
    WARNING = "WARN"
    ERROR = "ERROR"


class ConsoleReporter:
    """Prints prefixed lines such as ``[WARN] ...`` to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdout

    def emit(self, severity: Severity, text: str) -> None:
        print(f"[{severity.value}] {text}", file=self.stream, flush=True)

    def line(self, text: str) -> None:
        self.emit(Severity.INFO, text)

    def note(self, text: str) -> None:
        self.emit(Severity.NOTE, text)

    def success(self, text: str) -> None:
        self.emit(Severity.SUCCESS, text)

    def warning(self, text: str) -> None:
        self.emit(Severity.WARNING, text)

    def error(self, text: str) -> None:
        self.emit(Severity.ERROR, text)

    def section(self, title: str) -> None:
        print("", file=self.stream)
        print(title, file=self.stream)
        print("-" * len(title), file=self.stream, flush=True)


class RecordingReporter(ConsoleReporter):
    """Reporter that keeps every emitted line; used by callers embedding the runner."""

    def __init__(self) -> None:
        super().__init__(stream=None)
        self.lines: List[tuple] = []

    def emit(self, severity: Severity, text: str) -> None:
        self.lines.append((severity, text))

    def section(self, title: str) -> None:
        self.lines.append((Severity.INFO, title))

    def texts(self, severity: Optional[Severity] = None) -> List[str]:
        return [text for sev, text in self.lines if severity is None or sev is severity]


class RunLog:
    """Append-only text log for one run, written to ``db-fixer-<timestamp>.log``."""

    SEPARATOR = "-" * 80

    def __init__(self, directory: Path, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        self.directory = Path(directory)
        self.path = self.directory / f"db-fixer-{now.strftime('%Y-%m-%d_%H-%M-%S')}.log"
        self._handle: Optional[IO[str]] = None

    def open(self) -> "RunLog":
        self.directory.mkdir(parents=True, exist_ok=True)
        self._handle = self.path.open("a", encoding="utf-8")
        self.write(f"[START] DB Fix started at {datetime.now():%Y-%m-%d %H:%M:%S}")
        return self

    def write(self, message: str) -> None:
        if self._handle is not None:
            self._handle.write(message + "\n")

    def succeeded(self, message: str) -> None:
        self.write(f"✔ {message}")

    def failed(self, message: str) -> None:
        self.write(f"✘ {message}")

    def separator(self) -> None:
        self.write(self.SEPARATOR)

    def close(self) -> None:
        if self._handle is None:
            return
        self.write(f"[END] DB Fix completed at {datetime.now():%Y-%m-%d %H:%M:%S}")
        self._handle.close()
        self._handle = None

    def __enter__(self) -> "RunLog":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()
