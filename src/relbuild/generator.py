"""Target graph generator: dependency and architecture declarations to tasks."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace

from relbuild.builders import (
    DependencyBuild,
    FetchSource,
    LibraryMerge,
    ProgramBuild,
    ProgramMerge,
    render_flags,
)
from relbuild.config import BuildSettings
from relbuild.errors import ConfigurationError
from relbuild.graph import BuildGraph, Task
from relbuild.lockfile import LockedSource, pins_for
from relbuild.models import Arch, Dependency, Program
from relbuild.package import DistPackage

DEPS_TARGET = "deps"
UNIVERSAL_TARGET = "universal"
DIST_TARGET = "dist"
ALL_TARGET = "all"

# Handled by the command line, never present in the graph.
PSEUDO_TARGETS = ("clean", "lock", "list")


def source_task(dep: str) -> str:
    return f"{dep}.stamp"


def arch_task(name: str, arch: Arch) -> str:
    return f"{name}.{arch}.build"


def aggregate_task(name: str) -> str:
    return f"{name}.build"


def universal_task(dep: str) -> str:
    return f"{dep}.universal"


def build_archs(dep: Dependency, archs: Sequence[Arch]) -> tuple[Arch, ...]:
    """Architectures *dep* is built for: all of them, or just the primary one."""
    return tuple(archs) if dep.per_arch else (archs[0],)


def generate_graph(
    dependencies: Sequence[Dependency],
    archs: Sequence[Arch],
    *,
    settings: BuildSettings,
    program: Program | None = None,
    pins: Mapping[str, LockedSource] | None = None,
) -> BuildGraph:
    """Build and validate the complete task graph.

    Either the whole graph is returned or :class:`ConfigurationError` is
    raised; nothing is executed here. *settings* supplies paths and toolchain
    flags, *archs* the architectures to build (the first is primary).
    """
    archs = tuple(archs)
    _check_archs(archs)
    by_name = _check_dependencies(dependencies, archs, settings)
    if program is not None:
        _check_templates(program.name, program.confflags, archs, settings)
    resolved = dict(pins_for(dependencies, pins)) if pins is not None else {}

    if archs != settings.archs:
        settings = replace(settings, archs=archs)

    graph = BuildGraph()
    for dep in dependencies:
        fetch = FetchSource(dep, settings, resolved.get(dep.name))
        graph.add(
            Task(
                name=source_task(dep.name),
                action=fetch,
                marker=settings.marker(source_task(dep.name)),
                outputs=(settings.source_tree(dep.name),),
                signature=fetch.signature,
            )
        )

        per_arch_tasks: list[str] = []
        for arch in build_archs(dep, archs):
            body = DependencyBuild(dep, arch, settings)
            name = arch_task(dep.name, arch)
            required = tuple(
                arch_task(req, arch if by_name[req].per_arch else archs[0])
                for req in dep.requires
            )
            graph.add(
                Task(
                    name=name,
                    predecessors=(source_task(dep.name), *required),
                    action=body,
                    marker=settings.marker(name),
                    workdir=body.workdir,
                    inputs=(body.configure_script,),
                    outputs=body.installed_libraries,
                )
            )
            per_arch_tasks.append(name)
        graph.add(Task(name=aggregate_task(dep.name), predecessors=tuple(per_arch_tasks)))

    graph.add(
        Task(
            name=DEPS_TARGET,
            predecessors=tuple(aggregate_task(dep.name) for dep in dependencies),
        )
    )

    if len(archs) > 1:
        merges: list[str] = []
        for dep in dependencies:
            if not dep.per_arch or not dep.libraries:
                continue
            body = LibraryMerge(dep, settings)
            name = universal_task(dep.name)
            graph.add(
                Task(
                    name=name,
                    predecessors=(aggregate_task(dep.name),),
                    action=body,
                    marker=settings.marker(name),
                    outputs=body.outputs,
                )
            )
            merges.append(name)
        graph.add(Task(name=UNIVERSAL_TARGET, predecessors=tuple(merges)))

    if program is None:
        graph.add(Task(name=ALL_TARGET, predecessors=(DEPS_TARGET,)))
    else:
        _add_program(graph, program, archs, settings)

    graph.validate()
    return graph


def _add_program(
    graph: BuildGraph,
    program: Program,
    archs: tuple[Arch, ...],
    settings: BuildSettings,
) -> None:
    builds: list[str] = []
    for arch in archs:
        body = ProgramBuild(program, arch, settings)
        name = arch_task(program.name, arch)
        graph.add(
            Task(
                name=name,
                predecessors=(DEPS_TARGET,),
                action=body,
                marker=settings.marker(name),
                workdir=body.workdir,
                inputs=(settings.source_dir / "configure",),
            )
        )
        builds.append(name)

    merge = ProgramMerge(program, settings)
    merged = aggregate_task(program.name)
    graph.add(
        Task(
            name=merged,
            predecessors=tuple(builds),
            action=merge,
            marker=settings.marker(merged),
            outputs=(settings.dist_prefix(program.name),),
        )
    )

    package = DistPackage(program, settings)
    graph.add(
        Task(
            name=DIST_TARGET,
            predecessors=(merged,),
            action=package,
            marker=settings.marker(DIST_TARGET),
            outputs=(package.output,),
        )
    )
    graph.add(Task(name=ALL_TARGET, predecessors=(merged,)))


def _check_archs(archs: tuple[Arch, ...]) -> None:
    if not archs:
        raise ConfigurationError(
            "At least one architecture must be declared.",
            hint="Set ARCHS or pass --arch.",
            context={"operation": "generate_graph"},
        )
    seen: set[Arch] = set()
    for arch in archs:
        if not arch or arch == UNIVERSAL_TARGET or "/" in arch:
            raise ConfigurationError(
                "Invalid architecture name.",
                context={"operation": "generate_graph", "arch": arch},
            )
        if arch in seen:
            raise ConfigurationError(
                "Architecture declared more than once.",
                context={"operation": "generate_graph", "arch": arch},
            )
        seen.add(arch)


def _check_dependencies(
    dependencies: Sequence[Dependency],
    archs: tuple[Arch, ...],
    settings: BuildSettings,
) -> dict[str, Dependency]:
    by_name: dict[str, Dependency] = {}
    for dep in dependencies:
        if not dep.name or "/" in dep.name or dep.name.startswith("."):
            raise ConfigurationError(
                "Invalid dependency name.",
                context={"operation": "generate_graph", "dependency": dep.name},
            )
        if dep.name in by_name:
            raise ConfigurationError(
                "Dependency declared more than once.",
                context={"operation": "generate_graph", "dependency": dep.name},
            )
        if dep.confflags is None:
            raise ConfigurationError(
                "Dependency is missing its configure flags.",
                hint="Declare confflags=() when no extra flags are needed.",
                context={"operation": "generate_graph", "dependency": dep.name},
            )
        _check_templates(dep.name, dep.confflags, build_archs(dep, archs), settings)
        by_name[dep.name] = dep

    for dep in dependencies:
        for req in dep.requires:
            if req not in by_name:
                raise ConfigurationError(
                    "Dependency requires an unknown dependency.",
                    hint=f"Known dependencies: {', '.join(by_name)}.",
                    context={"operation": "generate_graph", "dependency": dep.name, "requires": req},
                )
            if req == dep.name:
                raise ConfigurationError(
                    "Dependency requires itself.",
                    context={"operation": "generate_graph", "dependency": dep.name},
                )
    return by_name


def _check_templates(
    owner: str,
    templates: Sequence[str],
    archs: Sequence[Arch],
    settings: BuildSettings,
) -> None:
    for arch in archs:
        try:
            render_flags(templates, prefix=settings.arch_prefix(arch), arch=arch)
        except ConfigurationError as exc:
            raise ConfigurationError(
                str(exc.args[0]),
                hint=exc.hint,
                context={**exc.context, "owner": owner},
            ) from exc
