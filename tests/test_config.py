from pathlib import Path

import pytest

from relbuild.config import (
    DEFAULT_ARCHS,
    BuildSettings,
    join_flags,
    parse_archs,
    parse_jobs,
    settings_from_env,
)
from relbuild.errors import ConfigurationError


def test_settings_from_empty_environment_use_documented_defaults(tmp_path: Path) -> None:
    settings = settings_from_env({}, build_root=tmp_path)

    assert settings.cc == "cc"
    assert settings.cxx == "c++ -stdlib=libc++"
    assert settings.effective_cflags == "-mmacosx-version-min=10.10 -Os"
    assert settings.effective_cxxflags == "-mmacosx-version-min=10.10 -Os"
    assert settings.ldflags == "-Wl,-dead_strip"
    assert settings.archs == DEFAULT_ARCHS
    assert settings.install_root == tmp_path.resolve() / "arch"
    assert settings.version == "dev"
    assert settings.jobs >= 1


def test_settings_honor_makefile_variables(tmp_path: Path) -> None:
    environ = {
        "CC": "clang",
        "PLATFORMFLAGS": "-mmacosx-version-min=11.0",
        "OPTFLAGS": "-O2",
        "ARCHS": "arm64, x86_64",
        "PREFIX": str(tmp_path / "prefix"),
        "SRCDIR": str(tmp_path / "src"),
        "VERSION": "1.37.0",
        "JOBS": "3",
    }

    settings = settings_from_env(environ, build_root=tmp_path / "build")

    assert settings.cc == "clang"
    assert settings.effective_cflags == "-mmacosx-version-min=11.0 -O2"
    assert settings.archs == ("arm64", "x86_64")
    assert settings.primary_arch == "arm64"
    assert settings.install_root == (tmp_path / "prefix").resolve()
    assert settings.arch_prefix("x86_64") == (tmp_path / "prefix").resolve() / "x86_64"
    assert settings.source_dir == (tmp_path / "src").resolve()
    assert settings.jobs == 3
    assert settings.dist_prefix("aria2").name == "aria2-1.37.0"
    assert settings.dist_archive("aria2").name == "aria2-1.37.0-osx-darwin.tar.bz2"


def test_explicit_cflags_replace_platform_and_opt_flags(tmp_path: Path) -> None:
    settings = settings_from_env({"CFLAGS": "-O0 -g", "OPTFLAGS": "-O3"}, build_root=tmp_path)

    assert settings.effective_cflags == "-O0 -g"
    assert settings.effective_cxxflags == "-mmacosx-version-min=10.10 -O3"


def test_empty_values_fall_back_to_defaults(tmp_path: Path) -> None:
    settings = settings_from_env({"CC": "  ", "JOBS": "", "VERSION": ""}, build_root=tmp_path)

    assert settings.cc == "cc"
    assert settings.version == "dev"


def test_environment_exports_toolchain_variables(tmp_path: Path) -> None:
    settings = BuildSettings(build_root=tmp_path, cc="clang")

    env = settings.environment({"PATH": "/usr/bin", "CC": "gcc"})

    assert env["PATH"] == "/usr/bin"
    assert env["CC"] == "clang"
    assert env["CFLAGS"] == settings.effective_cflags
    assert env["LDFLAGS"] == "-Wl,-dead_strip"


@pytest.mark.parametrize("raw", ["", "   ", " , "])
def test_empty_architecture_list_is_rejected(raw: str, tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        settings_from_env({"ARCHS": raw}, build_root=tmp_path)


def test_duplicate_architecture_is_rejected() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        parse_archs("x86_64 arm64 x86_64")

    assert excinfo.value.context["arch"] == "x86_64"


@pytest.mark.parametrize("raw", ["0", "-2", "many"])
def test_invalid_job_counts_are_rejected(raw: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_jobs(raw)


def test_primary_arch_requires_declared_architectures(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        BuildSettings(build_root=tmp_path, archs=()).primary_arch


def test_join_flags_skips_empty_parts() -> None:
    assert join_flags("-Os", None, "", "-arch arm64") == "-Os -arch arm64"
