"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeToolchain, Release, make_dependencies, pin_all, program_source

from relbuild.builders import StepContext
from relbuild.config import BuildSettings
from relbuild.models import Program


@pytest.fixture
def settings(tmp_path: Path) -> BuildSettings:
    """Two-architecture settings rooted in a temporary build directory."""
    return BuildSettings(
        build_root=tmp_path / "build",
        archs=("x86_64", "arm64"),
        source_dir=program_source(tmp_path / "aria2-src"),
        version="1.0",
        jobs=2,
    )


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def ctx(toolchain: FakeToolchain) -> StepContext:
    return StepContext(task="test", runner=toolchain)


@pytest.fixture
def release(tmp_path: Path, settings: BuildSettings, toolchain: FakeToolchain) -> Release:
    """A complete small release wired to the fake toolchain."""
    dependencies = make_dependencies(tmp_path / "archives")
    toolchain.libraries = {dep.name: dep.libraries for dep in dependencies}
    return Release(
        settings=settings,
        dependencies=dependencies,
        program=Program(name="aria2", binary="aria2c", confflags=("--with-libz", "ARIA2_STATIC=yes")),
        pins=pin_all(dependencies),
        toolchain=toolchain,
    )
