from relbuild.builders.autotools import DependencyBuild, render_flags
from relbuild.builders.base import CommandResult, CommandRunner, StepContext, SubprocessRunner
from relbuild.builders.program import LibraryMerge, ProgramBuild, ProgramMerge
from relbuild.builders.source import FetchSource

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DependencyBuild",
    "FetchSource",
    "LibraryMerge",
    "ProgramBuild",
    "ProgramMerge",
    "StepContext",
    "SubprocessRunner",
    "render_flags",
]
