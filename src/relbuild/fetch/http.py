"""Source archive download into a digest-named cache."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from urllib.error import URLError
from urllib.request import urlopen

from relbuild.errors import ConfigurationError, IntegrityError, StepError


def fetch(url: str, *, sha256: str, cache_dir: str | Path) -> Path:
    """Return the cached archive for *url*, downloading it on a cache miss.

    The cache entry is named after its digest and is re-verified on every
    hit, so a corrupted cache fails as loudly as a tampered download.
    """
    if not sha256:
        raise ConfigurationError(
            "Source archive has no sha256 pin.",
            hint="Run `relbuild lock` to pin every source archive.",
            context={"operation": "fetch", "url": url},
        )
    cached = _cache_dir(cache_dir) / sha256
    if cached.exists():
        _verify(cached.read_bytes(), sha256, url=url, origin=str(cached))
        return cached

    payload = _download(url)
    _verify(payload, sha256, url=url, origin=url)
    _store(cached, payload)
    return cached


def fetch_unpinned(url: str, *, cache_dir: str | Path) -> tuple[Path, str]:
    """Download *url* for pinning; returns the cached path and its digest."""
    payload = _download(url)
    digest = hashlib.sha256(payload).hexdigest()
    cached = _cache_dir(cache_dir) / digest
    if not cached.exists():
        _store(cached, payload)
    return cached, digest


def _cache_dir(cache_dir: str | Path) -> Path:
    path = Path(cache_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _download(url: str) -> bytes:
    try:
        with urlopen(url) as response:  # noqa: S310 - digest is checked by the caller
            return response.read()
    except (URLError, OSError) as exc:
        reason = getattr(exc, "reason", None) or exc
        raise StepError(
            "Source archive could not be downloaded.",
            hint="Check the dependency URL and network access.",
            context={"operation": "fetch", "url": url, "error": str(reason)},
        ) from exc


def _store(path: Path, payload: bytes) -> None:
    partial = path.with_suffix(".partial")
    partial.write_bytes(payload)
    os.replace(partial, path)


def _verify(payload: bytes, expected: str, *, url: str, origin: str) -> None:
    actual = hashlib.sha256(payload).hexdigest()
    if actual == expected:
        return
    if origin == url:
        message = "Downloaded archive does not match its pinned sha256."
        hint = "Re-pin with `relbuild lock` only if the new archive is trusted."
    else:
        message = "Cached archive does not match its pinned sha256."
        hint = "Delete the cached file; it is fetched again on the next build."
    raise IntegrityError(
        message,
        hint=hint,
        context={"operation": "fetch", "url": url, "path": origin, "expected": expected, "actual": actual},
    )
