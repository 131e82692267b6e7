import os
from dataclasses import replace
from pathlib import Path

import pytest
from fakes import Release

from relbuild.errors import StepError
from relbuild.stamps import MISSING, StampTracker, clean, mtime_ns


def test_missing_marker_is_never_current(tmp_path: Path) -> None:
    assert StampTracker().is_current(tmp_path / "marker", []) is False
    assert mtime_ns(tmp_path / "marker") == MISSING


def test_marker_is_current_when_not_older_than_dependencies(tmp_path: Path) -> None:
    tracker = StampTracker()
    stamp = tracker.stamp(tmp_path / "nested" / "marker")

    assert tracker.is_current(tmp_path / "nested" / "marker", [stamp, stamp - 10])
    assert not tracker.is_current(tmp_path / "nested" / "marker", [stamp + 1])


def test_stamp_moves_marker_to_now(tmp_path: Path) -> None:
    marker = tmp_path / "marker"
    marker.write_text("")
    os.utime(marker, ns=(1_000, 1_000))

    stamp = StampTracker().stamp(marker)

    assert stamp > 1_000
    assert StampTracker().time_of(marker) == stamp


def test_marker_recording_another_signature_is_stale(tmp_path: Path) -> None:
    tracker = StampTracker()
    marker = tmp_path / "zlib.stamp"
    stamp = tracker.stamp(marker, signature="zlib-1.3.tar.gz\nabc\n")

    assert tracker.is_current(marker, [stamp], signature="zlib-1.3.tar.gz\nabc\n")
    assert not tracker.is_current(marker, [stamp], signature="zlib-1.3.1.tar.gz\ndef\n")
    assert not tracker.is_current(marker, [stamp])


def test_missing_declared_input_fails_the_task(tmp_path: Path) -> None:
    with pytest.raises(StepError) as excinfo:
        StampTracker().input_times("zlib.x86_64.build", [tmp_path / "zlib" / "configure"])

    assert excinfo.value.context["task"] == "zlib.x86_64.build"


def test_clean_removes_markers_workdirs_outputs_and_prefix(release: Release) -> None:
    release.run("deps")
    graph = release.graph()
    settings = release.settings
    cache = settings.download_cache
    assert any(cache.iterdir())

    removed = clean(graph, settings)

    assert settings.arch_prefix("arm64") in removed
    assert settings.universal_prefix not in removed
    for task in graph.tasks.values():
        if task.marker is not None:
            assert not task.marker.exists()
        if task.workdir is not None:
            assert not task.workdir.exists()
        for output in task.outputs:
            assert not output.exists()
    assert any(cache.iterdir())


def test_clean_on_fresh_tree_removes_nothing(release: Release) -> None:
    assert clean(release.graph(), release.settings) == []


def test_clean_keeps_foreign_files_under_an_external_prefix(release: Release, tmp_path: Path) -> None:
    prefix = tmp_path / "usr_local"
    foreign = prefix / "bin" / "unrelated-tool"
    foreign.parent.mkdir(parents=True)
    foreign.write_text("#!/bin/sh\n")
    release.settings = replace(release.settings, prefix=prefix)
    release.run("deps")
    installed = release.settings.arch_prefix("x86_64") / "lib" / "libalpha.a"
    assert installed.is_file()

    removed = clean(release.graph(), release.settings)

    assert foreign.read_text() == "#!/bin/sh\n"
    assert prefix not in removed
    assert installed in removed
    assert not installed.exists()
    assert not any(release.settings.build_root.glob("*.build"))
