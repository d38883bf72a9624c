"""
Deadline-bound process execution.

Spawns the child command with inherited stdout/stderr and waits for it under a
wall-clock deadline:

    CronRun (controller)
        │
        ├── Cancellation ──────────────┐
        │                              ▼
        └── ProcessExecutor.execute ── subprocess.Popen(args)
                                       │
                                       ├── proc.wait(timeout=deadline)
                                       │       └── expired: cancel(DEADLINE) ──► SIGKILL
                                       └── exit status ──► ExecutionResult

Deadline expiry and external termination go through the same Cancellation:
whichever cancels first records its reason, and the child is killed with no
grace period.

Spawn failures never escape as exceptions. SpawnErrorClassifier maps the
OSError to an exit code (127 not found, 126 permission denied, -1 otherwise).
The classification inspects exception types, errno and message text; it is
best-effort and not exhaustive.
"""
from __future__ import annotations

import errno
import logging
import subprocess
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from cronrunner.exceptions import CronArgumentError, CronSpawnError
from cronrunner.models import (
    EXIT_EXEC_NOT_FOUND,
    EXIT_FAIL_GENERIC,
    EXIT_PERM_DENIED,
    EXIT_SUCCESS,
    EXIT_UNKNOWN,
    RunStatus,
)

logger = logging.getLogger(__name__)


class SpawnFailureKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"

    @property
    def exit_code(self) -> int:
        if self is SpawnFailureKind.NOT_FOUND:
            return EXIT_EXEC_NOT_FOUND
        if self is SpawnFailureKind.PERMISSION_DENIED:
            return EXIT_PERM_DENIED
        return EXIT_UNKNOWN


class CancelReason(str, Enum):
    DEADLINE = "deadline"
    EXTERNAL = "external"


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one execute() call."""

    exit_code: int
    status: RunStatus
    pid: Optional[int] = None
    spawn_failure: Optional[SpawnFailureKind] = None
    error: Optional[str] = None


SpawnErrorRule = Callable[[BaseException], Optional[SpawnFailureKind]]


def _by_type(exc: BaseException) -> Optional[SpawnFailureKind]:
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)):
        return SpawnFailureKind.NOT_FOUND
    if isinstance(exc, PermissionError):
        return SpawnFailureKind.PERMISSION_DENIED
    return None


def _by_errno(exc: BaseException) -> Optional[SpawnFailureKind]:
    code = getattr(exc, "errno", None)
    if code in (errno.ENOENT, errno.ENOTDIR):
        return SpawnFailureKind.NOT_FOUND
    if code in (errno.EACCES, errno.EPERM):
        return SpawnFailureKind.PERMISSION_DENIED
    return None


def _by_message(exc: BaseException) -> Optional[SpawnFailureKind]:
    text = str(exc).lower()
    if "not found" in text or "no such file" in text:
        return SpawnFailureKind.NOT_FOUND
    if "permission denied" in text:
        return SpawnFailureKind.PERMISSION_DENIED
    return None


DEFAULT_SPAWN_RULES: tuple = (_by_type, _by_errno, _by_message)


class SpawnErrorClassifier:
    """
    Ordered rules mapping a spawn exception to a SpawnFailureKind.

    The first rule returning a kind wins. Exceptions no rule recognises are
    SpawnFailureKind.UNKNOWN (exit code -1), so they stay visible in metrics.
    """

    def __init__(self, rules: Optional[Sequence[SpawnErrorRule]] = None) -> None:
        self._rules: List[SpawnErrorRule] = list(rules if rules is not None else DEFAULT_SPAWN_RULES)

    def add_rule(self, rule: SpawnErrorRule, *, first: bool = False) -> None:
        if first:
            self._rules.insert(0, rule)
        else:
            self._rules.append(rule)

    def classify(self, exc: BaseException) -> SpawnFailureKind:
        for rule in self._rules:
            kind = rule(exc)
            if kind is not None:
                return kind
        return SpawnFailureKind.UNKNOWN


class Cancellation:
    """
    Single cancellation signal shared by the deadline and the controller.

    The first cancel() records the reason; later calls are no-ops. The attached
    process is killed as soon as both a reason and a process are known.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reason: Optional[CancelReason] = None
        self._process: Optional[subprocess.Popen] = None

    @property
    def reason(self) -> Optional[CancelReason]:
        with self._lock:
            return self._reason

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def attach(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._process = process
            reason = self._reason
        if reason is not None:
            _kill(process)

    def cancel(self, reason: CancelReason) -> bool:
        """Cancel with reason. Returns False if already cancelled."""
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
            process = self._process
        logger.debug("Cancelling run (%s)", reason.value)
        if process is not None:
            _kill(process)
        return True


def _kill(process: subprocess.Popen) -> None:
    # Popen.kill() is a no-op once the child has been reaped.
    try:
        process.kill()
    except ProcessLookupError:
        pass


def exit_code_from_returncode(returncode: int) -> int:
    """
    Map a Popen return code to a run exit code.

    Popen reports death by signal N as -N. The child has no exit status then,
    so the code is -1 (unknown). 130 and 143 stay reserved for signals the
    runner itself receives.
    """
    if returncode < 0:
        return EXIT_UNKNOWN
    return returncode


class ProcessExecutor:
    """
    Runs one command under a deadline.

    Args:
        classifier: Spawn error classifier; defaults to the built-in rules.
        popen: Popen factory (tests inject failures here).
    """

    def __init__(
        self,
        classifier: Optional[SpawnErrorClassifier] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self._classifier = classifier or SpawnErrorClassifier()
        self._popen = popen

    def execute(
        self,
        command_line: Sequence[str],
        deadline: float,
        cancellation: Optional[Cancellation] = None,
    ) -> ExecutionResult:
        """
        Run command_line and wait for it, at most deadline seconds.

        Args:
            command_line: Program followed by its arguments.
            deadline: Wall-clock limit in seconds.
            cancellation: Shared cancellation; a fresh one when omitted.

        Returns:
            ExecutionResult. TIMEOUT carries exit code 1 since the killed
            child has no meaningful exit status.

        Raises:
            CronArgumentError: If command_line is empty.
        """
        args = list(command_line)
        if not args:
            raise CronArgumentError("Nothing to execute: empty command line")
        if cancellation is None:
            cancellation = Cancellation()

        # Keep our own buffered output ahead of the child's.
        sys.stdout.flush()
        sys.stderr.flush()

        try:
            process = self._popen(args)
        except (OSError, ValueError) as exc:
            return self._spawn_failed(args[0], exc)

        cancellation.attach(process)
        logger.debug("Started %s (pid %d, deadline %ss)", args[0], process.pid, deadline)

        try:
            returncode = process.wait(timeout=deadline)
        except subprocess.TimeoutExpired:
            cancellation.cancel(CancelReason.DEADLINE)
            returncode = process.wait()

        reason = cancellation.reason
        if reason is CancelReason.DEADLINE:
            logger.warning("%s exceeded its %ss deadline and was killed", args[0], deadline)
            return ExecutionResult(
                exit_code=EXIT_FAIL_GENERIC,
                status=RunStatus.TIMEOUT,
                pid=process.pid,
            )

        exit_code = exit_code_from_returncode(returncode)
        if reason is CancelReason.EXTERNAL:
            return ExecutionResult(
                exit_code=exit_code,
                status=RunStatus.TERMINATED,
                pid=process.pid,
            )

        status = RunStatus.SUCCESS if exit_code == EXIT_SUCCESS else RunStatus.FAIL
        logger.debug("%s exited with %d", args[0], exit_code)
        return ExecutionResult(exit_code=exit_code, status=status, pid=process.pid)

    def _spawn_failed(self, program: str, exc: BaseException) -> ExecutionResult:
        kind = self._classifier.classify(exc)
        error = CronSpawnError(
            f"Failed to start {program}: {exc}",
            kind=kind.value,
            program=program,
            exit_code=kind.exit_code,
        )
        logger.error("%s", error.message, extra={"cron_error": error.to_dict()})
        return ExecutionResult(
            exit_code=kind.exit_code,
            status=RunStatus.FAIL,
            spawn_failure=kind,
            error=str(exc),
        )


def execute(
    command_line: Sequence[str],
    deadline: float,
    cancellation: Optional[Cancellation] = None,
) -> ExecutionResult:
    """Run command_line with the default executor."""
    return ProcessExecutor().execute(command_line, deadline, cancellation)
