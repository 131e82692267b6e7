"""Typed build error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the CLI and the executor."""

    CONFIGURATION = "E_CONFIGURATION"
    LOCKFILE = "E_LOCKFILE"
    INTEGRITY = "E_INTEGRITY"
    STEP_FAILED = "E_STEP_FAILED"
    MERGE = "E_MERGE"
    ARTIFACT_VALIDATION = "E_ARTIFACT_VALIDATION"
    BUILD_FAILED = "E_BUILD_FAILED"


class RelbuildError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ConfigurationError(RelbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CONFIGURATION, hint=hint, context=context)


class LockfileError(RelbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.LOCKFILE, hint=hint, context=context)


class IntegrityError(RelbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INTEGRITY, hint=hint, context=context)


class StepError(RelbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.STEP_FAILED, hint=hint, context=context)


class MergeError(RelbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MERGE, hint=hint, context=context)


class ArtifactValidationError(RelbuildError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.ARTIFACT_VALIDATION, hint=hint, context=context)


class BuildFailedError(RelbuildError):
    """Raised once the executor has drained after one or more task failures."""

    failed: tuple[str, ...]
    blocked: tuple[str, ...]

    def __init__(
        self,
        message: str,
        *,
        failed: Sequence[str],
        blocked: Sequence[str] = (),
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.BUILD_FAILED, hint=hint, context=context)
        self.failed = tuple(failed)
        self.blocked = tuple(blocked)

    @property
    def first_failed(self) -> str:
        return self.failed[0]

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["failed"] = list(self.failed)
        payload["blocked"] = list(self.blocked)
        return payload


__all__ = [
    "ArtifactValidationError",
    "BuildFailedError",
    "ConfigurationError",
    "ErrorCode",
    "IntegrityError",
    "LockfileError",
    "MergeError",
    "RelbuildError",
    "StepError",
]
