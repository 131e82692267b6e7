"""Lockfile typed model."""

from __future__ import annotations

from dataclasses import dataclass, field

LOCKFILE_VERSION = 1


@dataclass(frozen=True, slots=True)
class LockedSource:
    url: str
    sha256: str


@dataclass(frozen=True, slots=True)
class Lockfile:
    version: int = LOCKFILE_VERSION
    sources: dict[str, LockedSource] = field(default_factory=dict)
