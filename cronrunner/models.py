from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from cronrunner.exceptions import CronConfigError, CronStateError


class RunStatus(str, Enum):
    """
    Lifecycle status of a single run.

    UNKNOWN and RUNNING are transient; a finalized run carries exactly one of
    SUCCESS, FAIL, TIMEOUT or TERMINATED.
    """

    UNKNOWN = "unknown"
    SUCCESS = "success"
    FAIL = "fail"
    TIMEOUT = "timeout"
    TERMINATED = "terminated"
    RUNNING = "running"

    @property
    def code(self) -> int:
        return STATUS_CODES[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_code(cls, code: int) -> "RunStatus":
        for status, value in STATUS_CODES.items():
            if value == code:
                return status
        raise ValueError(f"Unknown status code: {code}")


class ExitCodeName(str, Enum):
    """Named exit codes (see https://tldp.org/LDP/abs/html/exitcodes.html)."""

    UNKNOWN = "unknown"
    SUCCESS = "success"
    FAIL_GENERIC = "fail_generic"
    PERM_DENIED = "perm_denied"
    EXEC_NOT_FOUND = "exec_not_found"
    SIG_INT = "sig_int"
    SIG_TERM = "sig_term"

    @property
    def code(self) -> int:
        return EXIT_CODES[self]

    @classmethod
    def for_code(cls, code: int) -> Optional["ExitCodeName"]:
        for name, value in EXIT_CODES.items():
            if value == code:
                return name
        return None


STATUS_CODES: Dict[RunStatus, int] = {
    RunStatus.UNKNOWN: -1,
    RunStatus.SUCCESS: 0,
    RunStatus.FAIL: 1,
    RunStatus.TIMEOUT: 2,
    RunStatus.TERMINATED: 3,
    RunStatus.RUNNING: 4,
}

EXIT_CODES: Dict[ExitCodeName, int] = {
    ExitCodeName.UNKNOWN: -1,
    ExitCodeName.SUCCESS: 0,
    ExitCodeName.FAIL_GENERIC: 1,
    ExitCodeName.PERM_DENIED: 126,
    ExitCodeName.EXEC_NOT_FOUND: 127,
    ExitCodeName.SIG_INT: 130,
    ExitCodeName.SIG_TERM: 143,
}

TERMINAL_STATUSES = frozenset(
    {RunStatus.SUCCESS, RunStatus.FAIL, RunStatus.TIMEOUT, RunStatus.TERMINATED}
)

EXIT_UNKNOWN = EXIT_CODES[ExitCodeName.UNKNOWN]
EXIT_SUCCESS = EXIT_CODES[ExitCodeName.SUCCESS]
EXIT_FAIL_GENERIC = EXIT_CODES[ExitCodeName.FAIL_GENERIC]
EXIT_PERM_DENIED = EXIT_CODES[ExitCodeName.PERM_DENIED]
EXIT_EXEC_NOT_FOUND = EXIT_CODES[ExitCodeName.EXEC_NOT_FOUND]
EXIT_SIG_INT = EXIT_CODES[ExitCodeName.SIG_INT]
EXIT_SIG_TERM = EXIT_CODES[ExitCodeName.SIG_TERM]


def _check_injective(table: Mapping[Enum, int], members: List[Enum], label: str) -> None:
    missing = [member.value for member in members if member not in table]
    if missing:
        raise CronConfigError(
            f"{label} table is missing entries: {', '.join(missing)}",
            details={"missing": missing},
        )
    seen: Dict[int, str] = {}
    for member, code in table.items():
        if code in seen:
            raise CronConfigError(
                f"{label} code {code} is shared by {seen[code]} and {member.value}",
                details={"code": code},
            )
        seen[code] = member.value


def validate_code_tables() -> None:
    """Check that every status and exit name maps to exactly one distinct code."""
    _check_injective(STATUS_CODES, list(RunStatus), "status")
    _check_injective(EXIT_CODES, list(ExitCodeName), "exit")


validate_code_tables()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunRecord:
    """
    Metadata for one supervised run.

    Mutated by CronRun while the run is in flight. After finalize() every
    assignment raises CronStateError.

    Attributes:
        args: Command line that was (or would be) executed. Becomes a
            tuple on finalize().
        timeout_seconds: Configured deadline.
        dry_run: True when the run only printed what it would do.
        namespace: Metrics-safe identifier, frozen once derived.
        prefix: Metric-name prefix ("" or ending in "_").
        start_time: When the run started.
        end_time: When the run was finalized.
        duration: Elapsed run time from a monotonic clock.
        status: Current RunStatus.
        exit_code: Child exit code, -1 when unknown.
    """

    args: Sequence[str]
    timeout_seconds: int = 0
    dry_run: bool = False
    namespace: str = ""
    prefix: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: timedelta = field(default_factory=timedelta)
    status: RunStatus = RunStatus.UNKNOWN
    exit_code: int = EXIT_UNKNOWN
    _finalized: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_finalized", False):
            raise CronStateError(
                f"RunRecord is finalized; cannot set {name}",
                details={"field": name},
            )
        super().__setattr__(name, value)

    def finalize(self) -> None:
        """Freeze the record. Requires a terminal status."""
        if not self.status.is_terminal:
            raise CronStateError(
                f"Cannot finalize a run in status {self.status.value}",
                details={"status": self.status.value},
            )
        super().__setattr__("args", tuple(self.args))
        self._finalized = True

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def duration_ms(self) -> int:
        return int(self.duration / timedelta(milliseconds=1))

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat dict for structured logs and telemetry."""
        data: Dict[str, Any] = {
            f.name: getattr(self, f.name) for f in fields(self) if not f.name.startswith("_")
        }
        data["status"] = self.status.value
        data["status_code"] = self.status.code
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        data["args"] = list(self.args)
        data.pop("duration")
        data["duration_ms"] = self.duration_ms
        return data
