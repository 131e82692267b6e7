"""Completion markers: timestamp files that make re-runs incremental."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from relbuild.config import BuildSettings
from relbuild.errors import StepError
from relbuild.graph import BuildGraph

MISSING = -1


def mtime_ns(path: Path) -> int:
    """Modification time in nanoseconds, or ``MISSING`` when *path* is absent."""
    try:
        return os.stat(path).st_mtime_ns
    except FileNotFoundError:
        return MISSING


@dataclass(slots=True)
class StampTracker:
    """Decides whether a task body must run, and records its completion.

    A marker is current when it exists and is at least as new as every
    predecessor marker and declared source input, and records the same
    signature the task declares. The signature only pins what a timestamp
    cannot see, such as the locked URL and digest of a source archive.
    """

    def input_times(self, task: str, inputs: Iterable[Path]) -> list[int]:
        times: list[int] = []
        for path in inputs:
            stamp = mtime_ns(path)
            if stamp == MISSING:
                raise StepError(
                    "Declared source input does not exist.",
                    hint="Rebuild the task that produces it, or run `relbuild clean`.",
                    context={"task": task, "input": str(path)},
                )
            times.append(stamp)
        return times

    def is_current(self, marker: Path, dependency_times: Iterable[int], *, signature: str = "") -> bool:
        stamp = mtime_ns(marker)
        if stamp == MISSING:
            return False
        if marker.read_text(encoding="utf-8") != signature:
            return False
        return all(other <= stamp for other in dependency_times)

    def stamp(self, marker: Path, *, signature: str = "") -> int:
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(signature, encoding="utf-8")
        marker.touch()
        return mtime_ns(marker)

    def time_of(self, marker: Path) -> int:
        return mtime_ns(marker)


def clean(graph: BuildGraph, settings: BuildSettings) -> list[Path]:
    """Remove every marker, working directory and declared output.

    The per-architecture and universal prefixes go too when they live under
    the build root. An external PREFIX may hold files no task produced, so
    only declared outputs are removed from it. The download cache stays: it
    is content-addressed and verified on every use.
    """
    doomed: set[Path] = set()
    if settings.prefix is None:
        doomed.update(settings.arch_prefix(arch) for arch in settings.archs)
        doomed.add(settings.universal_prefix)
    for task in graph.tasks.values():
        if task.marker is not None:
            doomed.add(task.marker)
        if task.workdir is not None:
            doomed.add(task.workdir)
        doomed.update(task.outputs)

    removed: list[Path] = []
    for path in sorted(doomed):
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            continue
        removed.append(path)
    return removed
