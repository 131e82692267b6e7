"""Distribution archive of the installed release."""

from __future__ import annotations

import os
import tarfile
from dataclasses import dataclass
from pathlib import Path

from relbuild.builders.base import StepContext
from relbuild.config import BuildSettings
from relbuild.errors import StepError
from relbuild.models import Program


def build_dist_archive(source: Path, output: Path, *, arcname: str) -> Path:
    """Write a ``.tar.bz2`` of *source* with sorted entries and no owner data."""
    if not source.is_dir():
        raise StepError(
            "Nothing to package: install location does not exist.",
            hint="Build the program target first.",
            context={"operation": "dist", "path": str(source)},
        )
    output.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output.with_name(output.name + ".tmp")
    with tarfile.open(temp_path, "w:bz2") as tar:
        tar.add(source, arcname=arcname, recursive=False, filter=_normalize)
        for path in sorted(source.rglob("*")):
            tar.add(
                path,
                arcname=f"{arcname}/{path.relative_to(source).as_posix()}",
                recursive=False,
                filter=_normalize,
            )
    os.replace(temp_path, output)
    return output


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    return info


@dataclass(frozen=True, slots=True)
class DistPackage:
    program: Program
    settings: BuildSettings

    @property
    def output(self) -> Path:
        return self.settings.dist_archive(self.program.name)

    def __call__(self, ctx: StepContext) -> None:
        source = self.settings.dist_prefix(self.program.name)
        archive = build_dist_archive(source, self.output, arcname=source.name)
        ctx.note(f"packaged {archive}")
