"""
Typed exceptions for cronrunner.

Provides structured error handling with:
- CronError: Base exception for all cronrunner errors
- CronArgumentError: No command to run
- CronConfigError: Invalid configuration values
- CronStateError: Run lifecycle misuse
- CronSpawnError: Describes why a command could not be started
- CronMetricsWriteError: Metrics file could not be written

Timeouts and signal terminations are run outcomes, not exceptions; they are
recorded on the RunRecord as RunStatus.TIMEOUT / RunStatus.TERMINATED.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CronError(Exception):
    """Base exception for all cronrunner errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class CronArgumentError(CronError):
    """No command was given.

    Fatal: nothing is spawned and no metrics are written.
    """

    pass


class CronConfigError(CronError):
    """Configuration value is invalid.

    Examples:
        CronConfigError("CRON_TIMEOUT must be positive", details={"value": 0})
    """

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if key:
            details["key"] = key
        self.key = key
        super().__init__(message, code=code, details=details)


class CronStateError(CronError):
    """Run lifecycle misuse (running twice, mutating a finalized record)."""

    pass


class CronSpawnError(CronError):
    """A command could not be started.

    Never raised out of the executor: the failure is classified into an exit
    code and RunStatus.FAIL. Kept as a value for logging.

    Attributes:
        kind: SpawnFailureKind value ("not_found", "permission_denied", "unknown")
        program: The executable that failed to start
        exit_code: Exit code the failure resolved to
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str,
        program: Optional[str] = None,
        exit_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["kind"] = kind
        if program:
            details["program"] = program
        if exit_code is not None:
            details["exit_code"] = exit_code

        self.kind = kind
        self.program = program
        self.exit_code = exit_code

        super().__init__(message, code=code, details=details)


class CronMetricsWriteError(CronError, OSError):
    """Metrics file could not be written.

    An OSError so callers handling plain IO failures catch it too. Raised
    after the run is finalized; the recorded status and exit code stand.

    Attributes:
        path: Target metrics file
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if path:
            details["path"] = path
        self.path = path
        super().__init__(message, code=code, details=details)


__all__ = [
    "CronError",
    "CronArgumentError",
    "CronConfigError",
    "CronStateError",
    "CronSpawnError",
    "CronMetricsWriteError",
]
