"""Source archive extraction."""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path

from relbuild.errors import StepError


def extract_source(archive: Path, dest: Path, *, archive_root: str) -> Path:
    """Unpack *archive* and move its *archive_root* directory to *dest*.

    Extraction happens in a scratch directory beside *dest*, so a failed or
    partial unpack never leaves a half-populated source tree behind.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix=f".{dest.name}-", dir=dest.parent) as scratch:
        scratch_path = Path(scratch)
        try:
            with tarfile.open(archive, "r:*") as tar:
                tar.extractall(scratch_path, filter="data")
        except tarfile.TarError as exc:
            raise StepError(
                "Source archive could not be extracted.",
                context={"operation": "extract", "archive": str(archive), "error": str(exc)},
            ) from exc

        root = scratch_path / archive_root
        if not root.is_dir():
            found = sorted(item.name for item in scratch_path.iterdir())
            raise StepError(
                "Source archive does not contain the expected top-level directory.",
                hint="Check the dependency's archive_root against the archive contents.",
                context={
                    "operation": "extract",
                    "archive": str(archive),
                    "expected": archive_root,
                    "found": ", ".join(found),
                },
            )
        if dest.exists():
            shutil.rmtree(dest)
        shutil.move(str(root), dest)
    return dest
