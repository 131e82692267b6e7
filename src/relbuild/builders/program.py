"""Release program builder and the universal merge task bodies."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from relbuild.builders.autotools import make_argv, render_flags
from relbuild.builders.base import StepContext
from relbuild.config import BuildSettings, join_flags
from relbuild.errors import ArtifactValidationError
from relbuild.merge import merge_universal, verify_pie
from relbuild.models import Arch, Dependency, Program

STAGING_DIR = "destdir"


@dataclass(frozen=True, slots=True)
class ProgramBuild:
    """Configure, compile, PIE-check and stage the program for one architecture."""

    program: Program
    arch: Arch
    settings: BuildSettings

    @property
    def workdir(self) -> Path:
        return self.settings.workdir(self.program.name, self.arch)

    @property
    def built_binary(self) -> Path:
        return self.workdir / "src" / self.program.binary

    @property
    def staging_root(self) -> Path:
        """Staged copy of the install prefix produced by ``install-strip``."""
        dist = self.settings.dist_prefix(self.program.name)
        return self.workdir / STAGING_DIR / dist.relative_to(dist.anchor)

    @property
    def staged_binary(self) -> Path:
        return self.staging_root / "bin" / self.program.binary

    def configure_argv(self) -> list[str]:
        settings = self.settings
        prefix = settings.arch_prefix(self.arch)
        arch_flag = f"-arch {self.arch}"
        include = f"-I{prefix / 'include'}"
        return [
            str(settings.source_dir / "configure"),
            f"--prefix={settings.dist_prefix(self.program.name)}",
            "--sysconfdir=/etc",
            *render_flags(self.program.confflags, prefix=prefix, arch=self.arch),
            f"CFLAGS={join_flags(settings.effective_cflags, settings.lto_flags, arch_flag, include)}",
            f"CXXFLAGS={join_flags(settings.effective_cxxflags, settings.lto_flags, arch_flag, include)}",
            "LDFLAGS="
            + join_flags(
                settings.ldflags,
                settings.effective_cxxflags,
                settings.lto_flags,
                f"-L{prefix / 'lib'}",
            ),
            f"PKG_CONFIG_PATH={prefix / 'lib' / 'pkgconfig'}",
        ]

    def __call__(self, ctx: StepContext) -> None:
        self.workdir.mkdir(parents=True, exist_ok=True)
        ctx.run(self.configure_argv(), cwd=self.workdir, step="configure")
        ctx.run(make_argv(self.settings, self.workdir), step="compile")
        verify_pie(self.built_binary)
        ctx.note(f"{self.built_binary} is position-independent")
        staging = self.workdir / STAGING_DIR
        if staging.exists():
            shutil.rmtree(staging)
        ctx.run(
            make_argv(self.settings, self.workdir, "install-strip", f"DESTDIR={staging}"),
            step="install",
        )


@dataclass(frozen=True, slots=True)
class ProgramMerge:
    """Merge every architecture's staged program into the install location."""

    program: Program
    settings: BuildSettings

    @property
    def output(self) -> Path:
        return self.settings.dist_prefix(self.program.name) / "bin" / self.program.binary

    def inputs(self) -> dict[Arch, Path]:
        return {
            arch: ProgramBuild(self.program, arch, self.settings).staged_binary
            for arch in self.settings.archs
        }

    def __call__(self, ctx: StepContext) -> None:
        settings = self.settings
        merged = merge_universal(self.inputs(), self.output, archs=settings.archs, ctx=ctx)
        try:
            verify_pie(merged)
        except ArtifactValidationError:
            merged.unlink(missing_ok=True)
            raise
        ctx.note(f"merged {', '.join(settings.archs)} into {merged}")

        primary = ProgramBuild(self.program, settings.primary_arch, settings)
        shutil.copytree(
            primary.staging_root,
            settings.dist_prefix(self.program.name),
            dirs_exist_ok=True,
            ignore=shutil.ignore_patterns(self.program.binary),
        )
        if settings.smoke_test:
            ctx.run([str(merged), "-v"], step="smoke-test")


@dataclass(frozen=True, slots=True)
class LibraryMerge:
    """Merge one dependency's per-architecture static libraries."""

    dependency: Dependency
    settings: BuildSettings

    @property
    def outputs(self) -> tuple[Path, ...]:
        return tuple(
            self.settings.universal_prefix / "lib" / lib for lib in self.dependency.libraries
        )

    def __call__(self, ctx: StepContext) -> None:
        settings = self.settings
        for lib, output in zip(self.dependency.libraries, self.outputs):
            inputs = {arch: settings.arch_prefix(arch) / "lib" / lib for arch in settings.archs}
            merge_universal(inputs, output, archs=settings.archs, ctx=ctx)
            ctx.note(f"merged {lib} into {output}")
