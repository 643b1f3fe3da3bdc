from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from time import perf_counter

from . import config

LEVELS = ("debug", "info", "success", "warning", "error")


@dataclass(frozen=True)
class LogEntry:
    level: str
    message: str
    source: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        prefix = f"[{self.timestamp.strftime('%H:%M:%S')}] {self.level.upper()}"
        if self.source:
            return f"{prefix} ({self.source}) {self.message}"
        return f"{prefix} {self.message}"


@dataclass(frozen=True)
class FailureEntry:
    title: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {self.title}: {self.message}"


@dataclass
class MergeLog:
    debug_mode: bool = False
    start_time: datetime = field(default_factory=datetime.now)
    entries: list[LogEntry] = field(default_factory=list)
    failures: list[FailureEntry] = field(default_factory=list)
    elapsed_sec: float | None = None
    _started: float = field(default_factory=perf_counter, repr=False)

    def log(self, level: str, message: str, source: str | None = None) -> None:
        if level not in LEVELS:
            raise ValueError(f"unknown log level: {level!r}")
        if level == "debug" and not self.debug_mode:
            return
        self.entries.append(LogEntry(level=level, message=message, source=source))

    def debug(self, message: str, source: str | None = None) -> None:
        self.log("debug", message, source)

    def info(self, message: str, source: str | None = None) -> None:
        self.log("info", message, source)

    def success(self, message: str, source: str | None = None) -> None:
        self.log("success", message, source)

    def warning(self, message: str, source: str | None = None) -> None:
        self.log("warning", message, source)

    def error(self, message: str, source: str | None = None) -> None:
        self.log("error", message, source)

    def record_failure(self, title: str, message: str) -> None:
        self.failures.append(FailureEntry(title=title, message=message))

    def clear_failures(self) -> None:
        self.failures.clear()

    def entries_for(self, source: str | None, level: str | None = None) -> list[LogEntry]:
        return [
            entry
            for entry in self.entries
            if entry.source == source and (level is None or entry.level == level)
        ]

    def warnings_for(self, source: str | None) -> list[LogEntry]:
        return self.entries_for(source, level="warning")

    def finish(self) -> None:
        self.elapsed_sec = perf_counter() - self._started

    def render(self) -> str:
        lines = [
            f"started: {self.start_time.isoformat(timespec='seconds')}",
            f"elapsed_sec: {self.elapsed_sec:.3f}"
            if self.elapsed_sec is not None
            else "elapsed_sec: unknown",
            f"entries_count: {len(self.entries)}",
        ]
        lines.extend(entry.format() for entry in self.entries)
        lines.append(f"failures_count: {len(self.failures)}")
        lines.extend("failure: " + failure.format() for failure in self.failures)
        return "\n".join(lines) + "\n"

    def write(self, path: Path | None = None) -> Path:
        if path is None:
            config.ensure_base_dirs()
            path = config.build_log_path(self.start_time)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding="utf-8")
        return path
