"""Architecture merge step: per-architecture outputs into one universal file."""

from __future__ import annotations

import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

from relbuild.builders.base import StepContext
from relbuild.errors import ArtifactValidationError, MergeError, StepError
from relbuild.macho import is_macho, read_slices
from relbuild.models import Arch

LIPO = "lipo"


def require_inputs(inputs: Mapping[Arch, Path | None], archs: Sequence[Arch]) -> None:
    """Fail unless every declared architecture has an existing input file."""
    for arch in archs:
        path = inputs.get(arch)
        if path is None or not path.is_file():
            raise MergeError(
                f"Missing {arch} input for universal merge.",
                hint="Rebuild that architecture; a partial merge is never produced.",
                context={
                    "operation": "merge",
                    "arch": arch,
                    "path": str(path) if path is not None else "",
                },
            )
    extra = sorted(set(inputs) - set(archs))
    if extra:
        raise MergeError(
            "Merge inputs name undeclared architectures.",
            context={"operation": "merge", "archs": ", ".join(extra)},
        )


def merge_universal(
    inputs: Mapping[Arch, Path],
    output: Path,
    *,
    archs: Sequence[Arch],
    ctx: StepContext,
    lipo: str = LIPO,
) -> Path:
    """Combine one file per architecture into *output*.

    A single architecture is a plain copy. Mach-O results are checked to hold
    exactly one slice per declared architecture; on mismatch the output is
    removed.
    """
    require_inputs(inputs, archs)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.unlink(missing_ok=True)

    if len(archs) == 1:
        shutil.copy2(inputs[archs[0]], output)
    else:
        try:
            ctx.run(
                [lipo, "-create", *(str(inputs[arch]) for arch in archs), "-output", str(output)],
                step="merge",
            )
        except StepError:
            output.unlink(missing_ok=True)
            raise

    if is_macho(output):
        try:
            verify_slices(output, archs)
        except (MergeError, ArtifactValidationError):
            output.unlink(missing_ok=True)
            raise
    return output


def verify_slices(path: Path, archs: Sequence[Arch]) -> None:
    found = [item.arch for item in read_slices(path)]
    if sorted(found) != sorted(archs):
        raise MergeError(
            "Merged artifact does not carry exactly the declared architectures.",
            context={
                "operation": "merge",
                "path": str(path),
                "expected": " ".join(archs),
                "found": " ".join(found),
            },
        )


def verify_pie(path: Path) -> None:
    """Require every executable slice of *path* to be position-independent."""
    slices = read_slices(path)
    executables = [item for item in slices if item.is_executable]
    if not executables:
        raise ArtifactValidationError(
            "Artifact holds no executable slice.",
            context={"operation": "verify_pie", "path": str(path)},
        )
    offenders = [item.arch for item in executables if not item.is_pie]
    if offenders:
        raise ArtifactValidationError(
            "Executable is not position-independent (PIE).",
            hint="Make sure the link step does not pass -no_pie.",
            context={
                "operation": "verify_pie",
                "path": str(path),
                "archs": " ".join(offenders),
            },
        )
