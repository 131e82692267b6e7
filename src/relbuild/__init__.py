"""Public package entrypoint for the relbuild release builder."""

from .config import BuildSettings, settings_from_env
from .errors import (
    ArtifactValidationError,
    BuildFailedError,
    ConfigurationError,
    IntegrityError,
    LockfileError,
    MergeError,
    RelbuildError,
    StepError,
)
from .executor import ExecutionReport, GraphExecutor
from .generator import generate_graph
from .graph import BuildGraph, Task
from .merge import merge_universal, verify_pie
from .models import Dependency, Program
from .stamps import StampTracker, clean

__all__ = [
    "ArtifactValidationError",
    "BuildFailedError",
    "BuildGraph",
    "BuildSettings",
    "ConfigurationError",
    "Dependency",
    "ExecutionReport",
    "GraphExecutor",
    "IntegrityError",
    "LockfileError",
    "MergeError",
    "Program",
    "RelbuildError",
    "StampTracker",
    "StepError",
    "Task",
    "clean",
    "generate_graph",
    "merge_universal",
    "settings_from_env",
    "verify_pie",
]
