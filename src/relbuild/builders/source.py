"""Source task body: verified download and extraction of one dependency."""

from __future__ import annotations

from dataclasses import dataclass

from relbuild.builders.base import StepContext
from relbuild.config import BuildSettings
from relbuild.errors import LockfileError
from relbuild.fetch import extract_source, fetch
from relbuild.lockfile import LockedSource
from relbuild.models import Dependency


@dataclass(frozen=True, slots=True)
class FetchSource:
    dependency: Dependency
    settings: BuildSettings
    pin: LockedSource | None = None

    @property
    def signature(self) -> str:
        """Locked URL, digest and archive root; a change re-extracts the source."""
        if self.pin is None:
            return ""
        return f"{self.pin.url}\n{self.pin.sha256}\n{self.dependency.archive_root}\n"

    def __call__(self, ctx: StepContext) -> None:
        if self.pin is None:
            raise LockfileError(
                "Dependency has no pinned source archive.",
                hint="Run `relbuild lock` to pin it.",
                context={"dependency": self.dependency.name},
            )
        archive = fetch(
            self.pin.url,
            sha256=self.pin.sha256,
            cache_dir=self.settings.download_cache,
        )
        ctx.note(f"verified {self.pin.url} sha256={self.pin.sha256}")
        dest = extract_source(
            archive,
            self.settings.source_tree(self.dependency.name),
            archive_root=self.dependency.archive_root,
        )
        ctx.note(f"extracted into {dest}")
