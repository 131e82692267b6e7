"""Command line entry point.

Usage:
    relbuild lock
    relbuild [TARGET ...]        (default: all)
    relbuild list
    relbuild clean
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from relbuild.builders import CommandRunner, SubprocessRunner
from relbuild.config import BuildSettings, settings_from_env
from relbuild.errors import RelbuildError
from relbuild.executor import GraphExecutor
from relbuild.generator import ALL_TARGET, PSEUDO_TARGETS, generate_graph
from relbuild.graph import BuildGraph
from relbuild.lockfile import Lockfile, build_lockfile, read_lockfile, write_lockfile
from relbuild.observability import StructuredLogger
from relbuild.recipes import ARIA2, DEPENDENCIES
from relbuild.stamps import clean

BUILD_LOG = "build.jsonl"


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relbuild",
        description="Build the static multi-architecture aria2 release for macOS.",
    )
    parser.add_argument(
        "targets",
        nargs="*",
        metavar="TARGET",
        help=f"graph targets or one of {', '.join(PSEUDO_TARGETS)} (default: {ALL_TARGET})",
    )
    parser.add_argument("-j", "--jobs", type=_positive_int, help="parallel tasks and make jobs")
    parser.add_argument(
        "--arch",
        action="append",
        dest="archs",
        metavar="ARCH",
        help="target architecture, repeatable; the first is primary (overrides ARCHS)",
    )
    parser.add_argument("--build-root", default=".", help="directory for sources, markers and outputs")
    parser.add_argument("--source-dir", help="aria2 source checkout (overrides SRCDIR)")
    parser.add_argument("--version", dest="release_version", help="release version (overrides VERSION)")
    parser.add_argument("--lockfile", help="path of the source lockfile")
    parser.add_argument("--no-smoke-test", action="store_true", help="do not run the merged binary")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="only report errors")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="echo every task's output")
    return parser


def resolve_settings(args: argparse.Namespace, environ: Mapping[str, str]) -> BuildSettings:
    settings = settings_from_env(environ, build_root=args.build_root)
    overrides: dict[str, object] = {}
    if args.jobs is not None:
        overrides["jobs"] = args.jobs
    if args.archs:
        overrides["archs"] = tuple(args.archs)
    if args.source_dir:
        overrides["source_dir"] = Path(args.source_dir).resolve()
    if args.release_version:
        overrides["version"] = args.release_version
    if args.no_smoke_test:
        overrides["smoke_test"] = False
    return replace(settings, **overrides) if overrides else settings


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    runner: CommandRunner | None = None,
    echo: Callable[[str], None] = print,
) -> int:
    args = build_parser().parse_args(argv)
    env = os.environ if environ is None else environ
    try:
        settings = resolve_settings(args, env)
        lock_path = Path(args.lockfile).resolve() if args.lockfile else settings.lockfile_path
        session = _Session(
            settings=settings,
            lock_path=lock_path,
            runner=runner if runner is not None else SubprocessRunner(),
            environ=env,
            echo=echo,
            quiet=args.quiet,
            verbose=args.verbose,
        )
        pending: list[str] = []
        for target in args.targets or [ALL_TARGET]:
            if target not in PSEUDO_TARGETS:
                pending.append(target)
                continue
            if pending:
                session.build(pending)
                pending = []
            commands = {"clean": session.clean, "lock": session.lock, "list": session.list_targets}
            commands[target]()
        if pending:
            session.build(pending)
    except RelbuildError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


@dataclass(slots=True)
class _Session:
    settings: BuildSettings
    lock_path: Path
    runner: CommandRunner
    environ: Mapping[str, str]
    echo: Callable[[str], None]
    quiet: bool = False
    verbose: bool = False

    def graph(self, lockfile: Lockfile | None = None) -> BuildGraph:
        return generate_graph(
            DEPENDENCIES,
            self.settings.archs,
            settings=self.settings,
            program=ARIA2,
            pins=lockfile.sources if lockfile is not None else None,
        )

    def list_targets(self) -> None:
        graph = self.graph()
        for name in graph.names():
            task = graph[name]
            self.echo(f"{name}  ({'aggregate' if task.phony else 'task'})")
        for name in PSEUDO_TARGETS:
            self.echo(f"{name}  (command)")

    def clean(self) -> None:
        removed = clean(self.graph(), self.settings)
        if not self.quiet:
            self.echo(f"removed {len(removed)} path(s)")

    def lock(self) -> None:
        previous: Lockfile | None = None
        if self.lock_path.exists():
            previous = read_lockfile(self.lock_path)
        lockfile = build_lockfile(
            DEPENDENCIES,
            cache_dir=self.settings.download_cache,
            previous=previous,
        )
        changed = write_lockfile(lockfile, self.lock_path)
        if not self.quiet:
            state = "wrote" if changed else "unchanged"
            self.echo(f"{state} {self.lock_path} ({len(lockfile.sources)} sources)")

    def build(self, targets: Sequence[str]) -> None:
        lockfile = read_lockfile(self.lock_path)
        graph = self.graph(lockfile)
        logger = StructuredLogger(
            echo=None if self.quiet else self.echo,
            verbose=self.verbose,
            log_dir=self.settings.logs_dir,
        )
        executor = GraphExecutor(
            graph,
            self.runner,
            jobs=self.settings.jobs,
            env=self.settings.environment(self.environ),
            logger=logger,
        )
        try:
            report = executor.run(targets)
        finally:
            logger.to_json_lines(self.settings.logs_dir / BUILD_LOG)
        if not self.quiet:
            self.echo(
                f"{' '.join(targets)}: {len(report.executed)} executed, "
                f"{len(report.skipped)} up to date"
            )


if __name__ == "__main__":
    sys.exit(main())
