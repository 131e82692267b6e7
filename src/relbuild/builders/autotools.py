"""Autotools builder: configure, compile, self-test and install a static library."""

from __future__ import annotations

import string
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from relbuild.builders.base import StepContext
from relbuild.config import BuildSettings, join_flags
from relbuild.errors import ConfigurationError
from relbuild.models import TEMPLATE_FIELDS, Arch, Dependency, host_triple


def template_fields(template: str) -> set[str]:
    """Return the placeholder names used by a configure flag template."""
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as exc:
        raise ConfigurationError(
            "Malformed configure flag template.",
            context={"operation": "render_flags", "template": template, "error": str(exc)},
        ) from exc
    return {field for _, field, _, _ in parsed if field is not None}


def render_flags(templates: Iterable[str], *, prefix: Path, arch: Arch) -> list[str]:
    values = {"prefix": str(prefix), "arch": arch, "host": host_triple(arch)}
    rendered: list[str] = []
    for template in templates:
        unknown = template_fields(template) - set(TEMPLATE_FIELDS)
        if unknown:
            raise ConfigurationError(
                "Configure flag template uses an unknown placeholder.",
                hint=f"Allowed placeholders: {', '.join(TEMPLATE_FIELDS)}.",
                context={
                    "operation": "render_flags",
                    "template": template,
                    "unknown": ", ".join(sorted(unknown)),
                },
            )
        rendered.append(template.format(**values))
    return rendered


def make_argv(settings: BuildSettings, workdir: Path, *targets: str, parallel: bool = True) -> list[str]:
    jobs = f"-sj{settings.jobs}" if parallel else "-s"
    return [settings.make, "-C", str(workdir), jobs, *targets]


@dataclass(frozen=True, slots=True)
class DependencyBuild:
    """Task body building *dependency* for one architecture.

    Per-dependency ``cflags``/``cxxflags``/``ldflags`` are appended to the
    global toolchain flags.
    """

    dependency: Dependency
    arch: Arch
    settings: BuildSettings

    @property
    def workdir(self) -> Path:
        return self.settings.workdir(self.dependency.name, self.arch)

    @property
    def prefix(self) -> Path:
        return self.settings.arch_prefix(self.arch)

    @property
    def configure_script(self) -> Path:
        return self.settings.source_tree(self.dependency.name) / "configure"

    @property
    def installed_libraries(self) -> tuple[Path, ...]:
        return tuple(self.prefix / "lib" / lib for lib in self.dependency.libraries)

    def configure_argv(self) -> list[str]:
        dep = self.dependency
        settings = self.settings
        arch_flag = f"-arch {self.arch}"
        return [
            str(self.configure_script),
            "--enable-static",
            "--disable-shared",
            f"--prefix={self.prefix}",
            *render_flags(dep.confflags or (), prefix=self.prefix, arch=self.arch),
            f"CFLAGS={join_flags(settings.effective_cflags, dep.cflags, arch_flag)}",
            f"CXXFLAGS={join_flags(settings.effective_cxxflags, dep.cxxflags, arch_flag, '-std=c++11')}",
            f"LDFLAGS={join_flags(settings.ldflags, dep.ldflags)}",
            f"PKG_CONFIG_PATH={self.prefix / 'lib' / 'pkgconfig'}",
        ]

    def __call__(self, ctx: StepContext) -> None:
        self.workdir.mkdir(parents=True, exist_ok=True)
        ctx.run(self.configure_argv(), cwd=self.workdir, step="configure")
        ctx.run(make_argv(self.settings, self.workdir), step="compile")
        if not self.dependency.nocheck:
            ctx.run(make_argv(self.settings, self.workdir, "check"), step="check")
        ctx.run(make_argv(self.settings, self.workdir, "install", parallel=False), step="install")
