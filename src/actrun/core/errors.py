"""actrun error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Plan
- 4xxx: Execution
- 5xxx: Watch
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Plan (3xxx)
    PLAN_WORKFLOWS_NOT_FOUND = 3001
    PLAN_PARSE_ERROR = 3002
    PLAN_UNKNOWN_JOB = 3003
    PLAN_DEPENDENCY_CYCLE = 3004

    # Execution (4xxx)
    EXECUTION_STEP_FAILED = 4001
    EXECUTION_EVENT_FILE = 4002

    # Watch (5xxx)
    WATCH_ROOT_NOT_FOUND = 5001
    WATCH_SESSION_REUSED = 5002


@dataclass(frozen=True, slots=True)
class ActrunError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'PLAN_UNKNOWN_JOB')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(ActrunError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class PlanError(ActrunError):
    """Errors raised while building a plan from workflow files."""

    @classmethod
    def workflows_not_found(cls, path: str) -> "PlanError":
        return cls(
            code=ErrorCode.PLAN_WORKFLOWS_NOT_FOUND,
            message=f"No workflow files found at {path}",
            details={"path": path},
        )

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "PlanError":
        return cls(
            code=ErrorCode.PLAN_PARSE_ERROR,
            message=f"Failed to parse workflow {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def unknown_job(cls, job_id: str) -> "PlanError":
        return cls(
            code=ErrorCode.PLAN_UNKNOWN_JOB,
            message=f"Unknown job: {job_id}",
            details={"job": job_id},
        )

    @classmethod
    def dependency_cycle(cls, job_ids: list[str]) -> "PlanError":
        return cls(
            code=ErrorCode.PLAN_DEPENDENCY_CYCLE,
            message=f"Jobs have circular 'needs': {', '.join(sorted(job_ids))}",
            details={"jobs": sorted(job_ids)},
        )


class ExecutionError(ActrunError):
    """Errors raised by plan executors."""

    @classmethod
    def step_failed(cls, job_id: str, step: str, exit_code: int) -> "ExecutionError":
        return cls(
            code=ErrorCode.EXECUTION_STEP_FAILED,
            message=f"Step '{step}' of job '{job_id}' exited with code {exit_code}",
            details={"job": job_id, "step": step, "exit_code": exit_code},
        )

    @classmethod
    def event_file(cls, path: str, reason: str) -> "ExecutionError":
        return cls(
            code=ErrorCode.EXECUTION_EVENT_FILE,
            message=f"Cannot use event file {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class WatchError(ActrunError):
    """Watch session lifecycle errors."""

    @classmethod
    def root_not_found(cls, path: str) -> "WatchError":
        return cls(
            code=ErrorCode.WATCH_ROOT_NOT_FOUND,
            message=f"Watch root is not a directory: {path}",
            details={"path": path},
        )

    @classmethod
    def session_reused(cls, path: str) -> "WatchError":
        return cls(
            code=ErrorCode.WATCH_SESSION_REUSED,
            message=f"Watch session for {path} was already started",
            details={"path": path},
        )
