"""Source archive retrieval: checksum-verified download and extraction."""

from __future__ import annotations

from relbuild.fetch.archive import extract_source
from relbuild.fetch.http import fetch, fetch_unpinned

__all__ = ["extract_source", "fetch", "fetch_unpinned"]
