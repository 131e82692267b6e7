"""Parallel build graph executor.

Tasks run on a thread pool bounded by the job count. A task starts only once
every predecessor has completed; a failed task blocks all of its transitive
dependents while unrelated branches keep going. After the pool drains, the
first failure is reported as :class:`~relbuild.errors.BuildFailedError`.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from relbuild.builders.base import CommandRunner, StepContext
from relbuild.errors import BuildFailedError, RelbuildError, StepError
from relbuild.graph import BuildGraph, Task
from relbuild.observability import StructuredLogger
from relbuild.stamps import StampTracker


@dataclass(slots=True)
class ExecutionReport:
    executed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)
    errors: dict[str, RelbuildError] = field(default_factory=dict)


@dataclass(slots=True)
class GraphExecutor:
    graph: BuildGraph
    runner: CommandRunner
    jobs: int = 1
    env: Mapping[str, str] = field(default_factory=dict)
    tracker: StampTracker = field(default_factory=StampTracker)
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def run(self, targets: Sequence[str]) -> ExecutionReport:
        order = self.graph.closure(targets)
        report = ExecutionReport()
        waiting = {name: set(self.graph[name].predecessors) for name in order}
        dependents: dict[str, list[str]] = {name: [] for name in order}
        for name in order:
            for pred in self.graph[name].predecessors:
                dependents[pred].append(name)

        times: dict[str, int] = {}
        ready = deque(name for name in order if not waiting[name])
        running: dict[Future[tuple[bool, int]], str] = {}

        def release(name: str) -> None:
            for dependent in dependents[name]:
                waiting[dependent].discard(name)
                if not waiting[dependent]:
                    ready.append(dependent)

        with ThreadPoolExecutor(max_workers=max(1, self.jobs)) as pool:
            while ready or running:
                while ready and len(running) < max(1, self.jobs):
                    name = ready.popleft()
                    task = self.graph[name]
                    pred_times = [times[pred] for pred in task.predecessors]
                    if task.phony:
                        times[name] = max(pred_times, default=0)
                        release(name)
                        continue
                    running[pool.submit(self._execute, task, pred_times)] = name
                if not running:
                    continue

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    try:
                        executed, stamp = future.result()
                    except RelbuildError as exc:
                        report.failed.append(name)
                        report.errors[name] = exc
                        self._block(name, dependents, report)
                        continue
                    (report.executed if executed else report.skipped).append(name)
                    times[name] = stamp
                    release(name)

        if report.failed:
            first = report.failed[0]
            raise BuildFailedError(
                f"Build failed in task {first}.",
                failed=report.failed,
                blocked=report.blocked,
                hint="Fix the cause and re-run; completed tasks are not repeated.",
                context={
                    "task": first,
                    "error": str(report.errors[first]).splitlines()[0],
                    "blocked": " ".join(report.blocked),
                },
            ) from report.errors[first]
        return report

    def _execute(self, task: Task, pred_times: list[int]) -> tuple[bool, int]:
        assert task.action is not None and task.marker is not None
        ctx = StepContext(task=task.name, runner=self.runner, env=self.env)
        try:
            input_times = self.tracker.input_times(task.name, task.inputs)
            times = [*pred_times, *input_times]
            if self.tracker.is_current(task.marker, times, signature=task.signature):
                self.logger.log(operation="build", task=task.name, phase="skip", message="up to date")
                return False, self.tracker.time_of(task.marker)

            self.logger.log(operation="build", task=task.name, phase="start", message="running")
            task.action(ctx)
        except RelbuildError as exc:
            self._fail(task, ctx, exc)
            raise
        except OSError as exc:
            error = StepError(
                f"Filesystem error in {task.name}.",
                context={"task": task.name, "error": str(exc)},
            )
            self._fail(task, ctx, error)
            raise error from exc

        stamp = self.tracker.stamp(task.marker, signature=task.signature)
        self.logger.flush(task.name, ctx.output)
        self.logger.log(operation="build", task=task.name, phase="done", message="completed")
        return True, stamp

    def _fail(self, task: Task, ctx: StepContext, exc: RelbuildError) -> None:
        ctx.note(str(exc))
        self.logger.flush(task.name, ctx.output, failed=True)
        self.logger.log(
            operation="build",
            task=task.name,
            phase="failed",
            message=str(exc).splitlines()[0],
            level="error",
            extra=exc.to_dict(),
        )

    def _block(
        self,
        name: str,
        dependents: dict[str, list[str]],
        report: ExecutionReport,
    ) -> None:
        stack = list(dependents[name])
        while stack:
            current = stack.pop()
            if current in report.blocked:
                continue
            report.blocked.append(current)
            self.logger.log(
                operation="build",
                task=current,
                phase="blocked",
                message=f"not started: {name} failed",
                level="warning",
            )
            stack.extend(dependents[current])
