"""Lockfile pinning of dependency source archives."""

from __future__ import annotations

from relbuild.lockfile.io import parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from relbuild.lockfile.model import LockedSource, Lockfile
from relbuild.lockfile.resolve import build_lockfile, pins_for

__all__ = [
    "LockedSource",
    "Lockfile",
    "build_lockfile",
    "parse_lockfile",
    "pins_for",
    "read_lockfile",
    "serialize_lockfile",
    "write_lockfile",
]
