"""Fake macOS toolchain and release fixtures shared by the tests."""

from __future__ import annotations

import hashlib
import io
import json
import os
import shutil
import struct
import tarfile
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

from relbuild.builders import CommandResult
from relbuild.config import BuildSettings
from relbuild.executor import ExecutionReport, GraphExecutor
from relbuild.generator import generate_graph
from relbuild.graph import BuildGraph
from relbuild.lockfile import LockedSource
from relbuild.macho import FAT_MAGIC, MH_EXECUTE, MH_MAGIC_64, MH_OBJECT, MH_PIE, cpu_for_arch
from relbuild.models import Dependency, Program
from relbuild.observability import StructuredLogger

# Archive members are dated well before any marker the tests create.
OLD_MTIME = 1_000_000


def thin_macho(arch: str, *, filetype: int = MH_EXECUTE, flags: int = MH_PIE, payload: bytes = b"") -> bytes:
    cputype, cpusubtype = cpu_for_arch(arch)
    header = struct.pack("<IiiIIII", MH_MAGIC_64, cputype, cpusubtype, filetype, 0, 0, flags)
    return header + b"\0" * 4 + payload


def fat_macho(parts: Sequence[bytes]) -> bytes:
    start = _align(8 + 20 * len(parts))
    header = struct.pack(">II", FAT_MAGIC, len(parts))
    body = b""
    for part in parts:
        _, cputype, cpusubtype = struct.unpack("<Iii", part[:12])
        header += struct.pack(">iiIII", cputype, cpusubtype, start + len(body), len(part), 4)
        body += part.ljust(_align(len(part)), b"\0")
    return header.ljust(start, b"\0") + body


def _align(value: int, boundary: int = 16) -> int:
    return (value + boundary - 1) // boundary * boundary


@dataclass
class FakeToolchain:
    """Command runner standing in for configure, make, lipo and the program.

    Any command whose text (argv plus working directory) contains one of the
    ``failing`` needles exits with status 2.
    """

    libraries: Mapping[str, Sequence[str]] = field(default_factory=dict)
    binary: str = "aria2c"
    pie: bool = True
    failing: set[str] = field(default_factory=set)
    calls: list[list[str]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        argv = list(argv)
        with self._lock:
            self.calls.append(argv)
        text = " ".join(argv) + (f" @{cwd}" if cwd is not None else "")
        for needle in self.failing:
            if needle in text:
                return CommandResult(2, f"fake failure: {needle}")

        tool = Path(argv[0]).name
        if tool == "configure":
            return self._configure(argv, cwd)
        if tool == "make":
            return self._make(argv)
        if tool == "lipo":
            return self._lipo(argv)
        if tool == self.binary:
            return CommandResult(0, f"{self.binary} version 1.0")
        return CommandResult(127, f"{argv[0]}: command not found")

    def commands(self, tool: str) -> list[list[str]]:
        with self._lock:
            return [argv for argv in self.calls if Path(argv[0]).name == tool]

    def _configure(self, argv: list[str], cwd: Path | None) -> CommandResult:
        script = Path(argv[0])
        if not script.is_file() or cwd is None:
            return CommandResult(127, f"{script}: no such file")
        (cwd / "config.json").write_text(json.dumps({"script": argv[0], "args": argv[1:]}))
        return CommandResult(0, "configure: creating Makefile")

    def _make(self, argv: list[str]) -> CommandResult:
        workdir = Path(argv[argv.index("-C") + 1])
        rest = argv[argv.index("-C") + 2 :]
        targets = [item for item in rest if not item.startswith("-") and "=" not in item]
        variables = dict(item.split("=", 1) for item in rest if "=" in item and not item.startswith("-"))
        config_path = workdir / "config.json"
        if not config_path.is_file():
            return CommandResult(2, "make: *** No targets specified and no makefile found.")
        config = json.loads(config_path.read_text())
        args: list[str] = config["args"]
        name = Path(config["script"]).parent.name
        prefix = Path(_option(args, "--prefix="))
        cflags = _option(args, "CFLAGS=").split()
        arch = cflags[cflags.index("-arch") + 1]
        is_program = "--sysconfdir=/etc" in args

        if not targets:
            if is_program:
                built = workdir / "src" / self.binary
                built.parent.mkdir(parents=True, exist_ok=True)
                flags = MH_PIE if self.pie else 0
                built.write_bytes(thin_macho(arch, flags=flags, payload=f"{arch}-{self.binary}".encode()))
            else:
                (workdir / ".libs").write_text(arch)
            return CommandResult(0, "")
        if targets == ["check"]:
            return CommandResult(0, "All tests passed")
        if targets == ["install"]:
            for lib in self.libraries.get(name, ()):
                path = prefix / "lib" / lib
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(thin_macho(arch, filetype=MH_OBJECT, flags=0, payload=f"{name}-{lib}".encode()))
            include = prefix / "include" / f"{name}.h"
            include.parent.mkdir(parents=True, exist_ok=True)
            include.write_text(f"/* {name} */\n")
            return CommandResult(0, "")
        if targets == ["install-strip"]:
            root = Path(variables["DESTDIR"]) / prefix.relative_to(prefix.anchor)
            (root / "bin").mkdir(parents=True, exist_ok=True)
            shutil.copyfile(workdir / "src" / self.binary, root / "bin" / self.binary)
            doc = root / "share" / "doc" / "aria2" / "README"
            doc.parent.mkdir(parents=True, exist_ok=True)
            doc.write_text("aria2 release\n")
            return CommandResult(0, "")
        return CommandResult(2, f"make: *** No rule to make target {targets}")

    def _lipo(self, argv: list[str]) -> CommandResult:
        inputs = [Path(item) for item in argv[argv.index("-create") + 1 : argv.index("-output")]]
        output = Path(argv[argv.index("-output") + 1])
        missing = [str(path) for path in inputs if not path.is_file()]
        if missing:
            return CommandResult(1, f"lipo: can't open input file: {missing[0]}")
        output.write_bytes(fat_macho([path.read_bytes() for path in inputs]))
        return CommandResult(0, "")


def _option(args: Sequence[str], prefix: str) -> str:
    for item in args:
        if item.startswith(prefix):
            return item[len(prefix) :]
    raise AssertionError(f"configure was not passed {prefix}")


def source_archive(path: Path, root: str) -> Path:
    """Write a ``.tar.gz`` holding ``<root>/configure`` and a README."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for member, mode in (("configure", 0o755), ("README", 0o644)):
            payload = f"#!/bin/sh\n# {root} {member}\n".encode()
            info = tarfile.TarInfo(f"{root}/{member}")
            info.size = len(payload)
            info.mode = mode
            info.mtime = OLD_MTIME
            tar.addfile(info, io.BytesIO(payload))
    return path


@dataclass
class Release:
    """A small self-contained release: archives on disk, pins and a toolchain."""

    settings: BuildSettings
    dependencies: tuple[Dependency, ...]
    program: Program
    pins: dict[str, LockedSource]
    toolchain: FakeToolchain
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def graph(self) -> BuildGraph:
        return generate_graph(
            self.dependencies,
            self.settings.archs,
            settings=self.settings,
            program=self.program,
            pins=self.pins,
        )

    def run(self, *targets: str, graph: BuildGraph | None = None) -> ExecutionReport:
        executor = GraphExecutor(
            graph if graph is not None else self.graph(),
            self.toolchain,
            jobs=self.settings.jobs,
            logger=self.logger,
        )
        return executor.run(targets or ("all",))

    def age_markers(self, seconds: int = 100) -> None:
        """Move every existing marker *seconds* into the past."""
        old = time.time_ns() - seconds * 1_000_000_000
        for task in self.graph().tasks.values():
            if task.marker is not None and task.marker.exists():
                os.utime(task.marker, ns=(old, old))


def make_dependencies(base: Path) -> tuple[Dependency, ...]:
    """zlib (built once), alpha, beta (requires alpha) and an unrelated gamma."""
    specs = [
        ("zlib", {"per_arch": False, "libraries": ("libz.a",)}),
        ("alpha", {"confflags": ("--host={host}",), "libraries": ("libalpha.a",)}),
        (
            "beta",
            {
                "confflags": ("--with-alpha={prefix}",),
                "requires": ("alpha",),
                "nocheck": True,
                "cflags": "-DBETA",
                "libraries": ("libbeta.a",),
            },
        ),
        ("gamma", {"libraries": ("libgamma.a",)}),
    ]
    dependencies = []
    for name, options in specs:
        root = f"{name}-1.0"
        archive = source_archive(base / f"{root}.tar.gz", root)
        options = {"confflags": (), **options}
        dependencies.append(
            Dependency(
                name=name,
                version="1.0",
                url=archive.as_uri(),
                archive_root=root,
                **options,
            )
        )
    return tuple(dependencies)


def pin_all(dependencies: Sequence[Dependency]) -> dict[str, LockedSource]:
    pins = {}
    for dep in dependencies:
        digest = hashlib.sha256(Path(url2pathname(urlparse(dep.url).path)).read_bytes()).hexdigest()
        pins[dep.name] = LockedSource(url=dep.url, sha256=digest)
    return pins


def program_source(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    configure = path / "configure"
    configure.write_text("#!/bin/sh\n")
    os.utime(configure, (OLD_MTIME, OLD_MTIME))
    return path
