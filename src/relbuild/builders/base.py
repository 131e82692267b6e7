"""Command execution interfaces shared by task bodies."""

from __future__ import annotations

import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from relbuild.errors import StepError

OUTPUT_TAIL = 2000


@dataclass(frozen=True, slots=True)
class CommandResult:
    returncode: int
    output: str = ""


class CommandRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run *argv* to completion and return its exit status and output."""


@dataclass(slots=True)
class SubprocessRunner:
    """Runs commands on the host, merging stderr into stdout."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        try:
            completed = subprocess.run(
                list(argv),
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as exc:
            return CommandResult(returncode=127, output=str(exc))
        return CommandResult(returncode=completed.returncode, output=completed.stdout or "")


@dataclass(slots=True)
class StepContext:
    """Per-task execution state handed to a task body.

    Output of every sub-step is captured in :attr:`output` so the executor can
    flush it as one block once the task finishes.
    """

    task: str
    runner: CommandRunner
    env: Mapping[str, str] = field(default_factory=dict)
    output: list[str] = field(default_factory=list)

    def note(self, message: str) -> None:
        self.output.append(message)

    def run(self, argv: Sequence[str], *, cwd: Path | None = None, step: str = "") -> CommandResult:
        command = shlex.join(argv)
        self.output.append(f"$ {command}")
        result = self.runner.run(argv, cwd=cwd, env=self.env)
        if result.output:
            self.output.append(result.output.rstrip())
        if result.returncode != 0:
            raise StepError(
                f"{step or 'command'} step failed for {self.task}.",
                hint="Inspect the task log for the failing command's output.",
                context={
                    "task": self.task,
                    "step": step,
                    "command": command,
                    "cwd": str(cwd) if cwd is not None else "",
                    "returncode": str(result.returncode),
                    "output": result.output[-OUTPUT_TAIL:] if result.output else "",
                },
            )
        return result
