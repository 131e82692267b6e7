"""Build graph model: tasks, predecessor edges and structural validation."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from relbuild.builders.base import StepContext
from relbuild.errors import ConfigurationError

TaskBody = Callable[[StepContext], None]


@dataclass(frozen=True, slots=True)
class Task:
    """One node of the build graph.

    A task without a body is an aggregation task: it has no marker and is
    complete as soon as all of its predecessors are. A non-empty *signature*
    is recorded in the marker; a marker holding a different one is stale.
    """

    name: str
    predecessors: tuple[str, ...] = ()
    action: TaskBody | None = None
    marker: Path | None = None
    workdir: Path | None = None
    inputs: tuple[Path, ...] = ()
    outputs: tuple[Path, ...] = ()
    signature: str = ""

    @property
    def phony(self) -> bool:
        return self.action is None


@dataclass(slots=True)
class BuildGraph:
    tasks: dict[str, Task] = field(default_factory=dict)

    def add(self, task: Task) -> Task:
        if task.name in self.tasks:
            raise ConfigurationError(
                "Task declared more than once.",
                context={"operation": "generate_graph", "task": task.name},
            )
        if task.action is not None and task.marker is None:
            raise ConfigurationError(
                "Task with a body must declare a completion marker.",
                context={"operation": "generate_graph", "task": task.name},
            )
        self.tasks[task.name] = task
        return task

    def __contains__(self, name: object) -> bool:
        return name in self.tasks

    def __getitem__(self, name: str) -> Task:
        try:
            return self.tasks[name]
        except KeyError as exc:
            raise ConfigurationError(
                "Unknown build target.",
                hint="Run `relbuild list` to see the available targets.",
                context={"target": name},
            ) from exc

    def names(self) -> list[str]:
        return sorted(self.tasks)

    def closure(self, targets: Iterable[str]) -> list[str]:
        """Return *targets* and everything they depend on, predecessors first."""
        order: list[str] = []
        state: dict[str, int] = {}

        def visit(name: str, trail: tuple[str, ...]) -> None:
            mark = state.get(name)
            if mark == 2:
                return
            if mark == 1:
                cycle = trail[trail.index(name) :] + (name,)
                raise ConfigurationError(
                    "Dependency cycle in build graph.",
                    context={"operation": "closure", "cycle": " -> ".join(cycle)},
                )
            task = self[name]
            state[name] = 1
            for pred in task.predecessors:
                visit(pred, trail + (name,))
            state[name] = 2
            order.append(name)

        for target in targets:
            visit(target, ())
        return order

    def ancestors(self, name: str) -> frozenset[str]:
        seen: set[str] = set()
        stack = list(self[name].predecessors)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self[current].predecessors)
        return frozenset(seen)

    def validate(self) -> None:
        """Check edges, acyclicity and output disjointness of unordered tasks."""
        for task in self.tasks.values():
            for pred in task.predecessors:
                if pred not in self.tasks:
                    raise ConfigurationError(
                        "Task depends on an unknown task.",
                        context={"operation": "validate", "task": task.name, "predecessor": pred},
                    )
        self.closure(self.names())
        self._check_output_disjointness()

    def _check_output_disjointness(self) -> None:
        ancestors = {name: self.ancestors(name) for name in self.tasks}
        owned = [
            (task.name, path)
            for task in self.tasks.values()
            for path in _owned_paths(task)
        ]
        for index, (left, left_path) in enumerate(owned):
            for right, right_path in owned[index + 1 :]:
                if left == right or not _overlaps(left_path, right_path):
                    continue
                if left in ancestors[right] or right in ancestors[left]:
                    continue
                raise ConfigurationError(
                    "Concurrently runnable tasks declare overlapping outputs.",
                    hint="Give each task its own output paths or order them with an edge.",
                    context={
                        "operation": "validate",
                        "first": f"{left}: {left_path}",
                        "second": f"{right}: {right_path}",
                    },
                )


def _owned_paths(task: Task) -> tuple[Path, ...]:
    paths = list(task.outputs)
    if task.workdir is not None:
        paths.append(task.workdir)
    if task.marker is not None:
        paths.append(task.marker)
    return tuple(paths)


def _overlaps(left: Path, right: Path) -> bool:
    return left == right or left.is_relative_to(right) or right.is_relative_to(left)
