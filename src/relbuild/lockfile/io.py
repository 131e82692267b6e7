"""Lockfile parser and serializer."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from relbuild.errors import LockfileError
from relbuild.lockfile.model import LOCKFILE_VERSION, LockedSource, Lockfile

_SHA256 = re.compile(r"^[0-9a-f]{64}$")


def serialize_lockfile(lockfile: Lockfile) -> str:
    payload = {
        "version": lockfile.version,
        "sources": {
            name: {"url": item.url, "sha256": item.sha256}
            for name, item in sorted(lockfile.sources.items())
        },
    }
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str) -> Lockfile:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lockfile JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lockfile payload type.")

    version = _required_int(payload, "version")
    if version != LOCKFILE_VERSION:
        raise LockfileError(
            "Unsupported lockfile version.",
            hint="Regenerate the lockfile with `relbuild lock`.",
            context={"version": str(version), "supported": str(LOCKFILE_VERSION)},
        )
    sources_raw = payload.get("sources", {})
    if not isinstance(sources_raw, dict):
        raise LockfileError("Invalid lockfile `sources` value.")
    sources = {
        _source_name(name): _parse_locked_source(name, item) for name, item in sources_raw.items()
    }
    return Lockfile(version=version, sources=sources)


def read_lockfile(path: str | Path) -> Lockfile:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run `relbuild lock` to pin the source archives.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw)


def write_lockfile(lockfile: Lockfile, path: str | Path) -> bool:
    """Write *lockfile* to *path*; return False when the content is unchanged."""
    lock_path = Path(path)
    rendered = serialize_lockfile(lockfile)
    if lock_path.exists() and lock_path.read_text(encoding="utf-8") == rendered:
        return False
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(rendered, encoding="utf-8")
    return True


def _source_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise LockfileError("Invalid lockfile source name.")
    return name


def _parse_locked_source(name: str, item: Any) -> LockedSource:
    if not isinstance(item, dict):
        raise LockfileError("Invalid source entry in lockfile.", context={"source": str(name)})
    sha256 = _required_str(item, "sha256")
    if not _SHA256.match(sha256):
        raise LockfileError(
            "Lockfile sha256 must be 64 lowercase hex characters.",
            context={"source": str(name), "sha256": sha256},
        )
    return LockedSource(url=_required_str(item, "url"), sha256=sha256)


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value
