"""Build settings and their environment overrides.

Every knob the release Makefile exposed as an overridable variable is read
from the environment by :func:`settings_from_env`; unset or empty values fall
back to the defaults below.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from relbuild.errors import ConfigurationError
from relbuild.models import Arch

DEFAULT_CC = "cc"
DEFAULT_CXX = "c++ -stdlib=libc++"
DEFAULT_MAKE = "make"
DEFAULT_PLATFORM_FLAGS = "-mmacosx-version-min=10.10"
DEFAULT_OPT_FLAGS = "-Os"
DEFAULT_LDFLAGS = "-Wl,-dead_strip"
DEFAULT_LTO_FLAGS = "-flto -ffunction-sections -fdata-sections"
DEFAULT_ARCHS: tuple[Arch, ...] = ("x86_64",)
DEFAULT_VERSION = "dev"
DEFAULT_PLATFORM_TAG = "osx-darwin"

LOCKFILE_NAME = "sources.lock.json"

_ARCH_SPLIT = re.compile(r"[\s,]+")


def detect_jobs() -> int:
    return max(1, os.cpu_count() or 1)


@dataclass(frozen=True, slots=True)
class BuildSettings:
    build_root: Path
    cc: str = DEFAULT_CC
    cxx: str = DEFAULT_CXX
    make: str = DEFAULT_MAKE
    platform_flags: str = DEFAULT_PLATFORM_FLAGS
    opt_flags: str = DEFAULT_OPT_FLAGS
    cflags: str | None = None
    cxxflags: str | None = None
    ldflags: str = DEFAULT_LDFLAGS
    lto_flags: str = DEFAULT_LTO_FLAGS
    archs: tuple[Arch, ...] = DEFAULT_ARCHS
    prefix: Path | None = None
    source_dir: Path = field(default_factory=lambda: Path("."))
    version: str = DEFAULT_VERSION
    jobs: int = field(default_factory=detect_jobs)
    platform_tag: str = DEFAULT_PLATFORM_TAG
    smoke_test: bool = True

    @property
    def primary_arch(self) -> Arch:
        if not self.archs:
            raise ConfigurationError(
                "At least one architecture must be declared.",
                hint="Set ARCHS, e.g. ARCHS='x86_64 arm64'.",
                context={"operation": "settings"},
            )
        return self.archs[0]

    @property
    def effective_cflags(self) -> str:
        if self.cflags is not None:
            return self.cflags
        return join_flags(self.platform_flags, self.opt_flags)

    @property
    def effective_cxxflags(self) -> str:
        if self.cxxflags is not None:
            return self.cxxflags
        return join_flags(self.platform_flags, self.opt_flags)

    @property
    def install_root(self) -> Path:
        """Installation prefix shared by every dependency build."""
        return self.prefix if self.prefix is not None else self.build_root / "arch"

    def arch_prefix(self, arch: Arch) -> Path:
        return self.install_root / arch

    def source_tree(self, name: str) -> Path:
        return self.build_root / name

    def workdir(self, name: str, arch: Arch) -> Path:
        return self.build_root / f"{name}.{arch}"

    def marker(self, task: str) -> Path:
        return self.build_root / task

    @property
    def universal_prefix(self) -> Path:
        return self.install_root / "universal"

    def dist_prefix(self, program: str) -> Path:
        return self.build_root / f"{program}-{self.version}"

    def dist_archive(self, program: str) -> Path:
        return self.build_root / f"{program}-{self.version}-{self.platform_tag}.tar.bz2"

    @property
    def logs_dir(self) -> Path:
        return self.build_root / "logs"

    @property
    def download_cache(self) -> Path:
        return self.build_root / ".cache" / "downloads"

    @property
    def lockfile_path(self) -> Path:
        return self.build_root / LOCKFILE_NAME

    def environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return the exported toolchain environment layered over *base*."""
        env = dict(base or {})
        env.update(
            {
                "CC": self.cc,
                "CXX": self.cxx,
                "CFLAGS": self.effective_cflags,
                "CXXFLAGS": self.effective_cxxflags,
                "LDFLAGS": self.ldflags,
            }
        )
        return env


def settings_from_env(
    environ: Mapping[str, str],
    *,
    build_root: str | Path,
) -> BuildSettings:
    """Build :class:`BuildSettings` from Makefile-compatible variables."""
    root = Path(build_root).resolve()

    archs_raw = environ.get("ARCHS")
    archs = DEFAULT_ARCHS if archs_raw is None else parse_archs(archs_raw)

    prefix_raw = _get(environ, "PREFIX")
    srcdir_raw = _get(environ, "SRCDIR")
    jobs_raw = _get(environ, "JOBS")

    return BuildSettings(
        build_root=root,
        cc=_get(environ, "CC") or DEFAULT_CC,
        cxx=_get(environ, "CXX") or DEFAULT_CXX,
        make=_get(environ, "MAKE") or DEFAULT_MAKE,
        platform_flags=_get(environ, "PLATFORMFLAGS") or DEFAULT_PLATFORM_FLAGS,
        opt_flags=_get(environ, "OPTFLAGS") or DEFAULT_OPT_FLAGS,
        cflags=_get(environ, "CFLAGS"),
        cxxflags=_get(environ, "CXXFLAGS"),
        ldflags=_get(environ, "LDFLAGS") or DEFAULT_LDFLAGS,
        archs=archs,
        prefix=Path(prefix_raw).resolve() if prefix_raw else None,
        source_dir=Path(srcdir_raw).resolve() if srcdir_raw else Path(".").resolve(),
        version=_get(environ, "VERSION") or DEFAULT_VERSION,
        jobs=parse_jobs(jobs_raw) if jobs_raw else detect_jobs(),
    )


def parse_archs(raw: str) -> tuple[Arch, ...]:
    archs = tuple(item for item in _ARCH_SPLIT.split(raw.strip()) if item)
    if not archs:
        raise ConfigurationError(
            "Architecture list is empty.",
            hint="Set ARCHS to one or more architectures, e.g. 'x86_64 arm64'.",
            context={"operation": "settings", "ARCHS": repr(raw)},
        )
    seen: set[str] = set()
    for arch in archs:
        if arch in seen:
            raise ConfigurationError(
                "Architecture declared more than once.",
                context={"operation": "settings", "arch": arch},
            )
        seen.add(arch)
    return archs


def parse_jobs(raw: str) -> int:
    try:
        jobs = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            "Job count must be an integer.",
            context={"operation": "settings", "JOBS": raw},
        ) from exc
    if jobs < 1:
        raise ConfigurationError(
            "Job count must be at least 1.",
            context={"operation": "settings", "JOBS": raw},
        )
    return jobs


def _get(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def join_flags(*parts: str | None) -> str:
    return " ".join(part for part in parts if part)
