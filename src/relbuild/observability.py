"""Structured logging and per-task output capture."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

Echo = Callable[[str], None]


@dataclass(slots=True)
class StructuredLogger:
    """Thread-safe list of structured build records.

    Sub-step output of a task is flushed as one block through :meth:`flush`,
    so concurrently running tasks never interleave their lines.
    """

    echo: Echo | None = None
    verbose: bool = False
    log_dir: Path | None = None
    records: list[dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def log(
        self,
        *,
        operation: str,
        task: str | None,
        phase: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "task": task,
            "phase": phase,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        with self._lock:
            self.records.append(record)
            if self.echo is not None:
                self.echo(f"[{phase}] {task}: {message}" if task else message)

    def flush(self, task: str, lines: Sequence[str], *, failed: bool = False) -> Path | None:
        """Write a task's captured output to its log file and echo it once."""
        if not lines:
            return None
        text = "\n".join(lines) + "\n"
        path: Path | None = None
        with self._lock:
            if self.log_dir is not None:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                path = self.log_dir / f"{task}.log"
                path.write_text(text, encoding="utf-8")
            if self.echo is not None and (failed or self.verbose):
                self.echo(text.rstrip("\n"))
        return path

    def records_for_task(self, task: str) -> list[dict[str, Any]]:
        with self._lock:
            return [record for record in self.records if record.get("task") == task]

    def phases(self, phase: str) -> list[str]:
        with self._lock:
            return [record["task"] for record in self.records if record.get("phase") == phase]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path
