"""Lockfile resolution helpers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path

from relbuild.errors import LockfileError
from relbuild.fetch import fetch_unpinned
from relbuild.lockfile.model import LockedSource, Lockfile
from relbuild.models import Dependency


def build_lockfile(
    dependencies: Iterable[Dependency],
    *,
    cache_dir: Path,
    previous: Lockfile | None = None,
) -> Lockfile:
    """Pin every dependency archive, reusing pins whose URL is unchanged."""
    sources: dict[str, LockedSource] = {}
    for dep in dependencies:
        known = previous.sources.get(dep.name) if previous is not None else None
        if known is not None and known.url == dep.url:
            sources[dep.name] = known
            continue
        _, digest = fetch_unpinned(dep.url, cache_dir=cache_dir)
        sources[dep.name] = LockedSource(url=dep.url, sha256=digest)
    return Lockfile(sources=sources)


def pins_for(
    dependencies: Iterable[Dependency],
    sources: Mapping[str, LockedSource],
) -> dict[str, LockedSource]:
    """Return the pin for every dependency, failing on missing or stale ones."""
    pins: dict[str, LockedSource] = {}
    for dep in dependencies:
        pin = sources.get(dep.name)
        if pin is None:
            raise LockfileError(
                "Dependency has no pinned source archive.",
                hint="Run `relbuild lock` to pin it.",
                context={"dependency": dep.name},
            )
        if pin.url != dep.url:
            raise LockfileError(
                "Pinned URL does not match the dependency's declared URL.",
                hint="Run `relbuild lock` after changing a dependency version.",
                context={"dependency": dep.name, "locked": pin.url, "declared": dep.url},
            )
        pins[dep.name] = pin
    return pins

