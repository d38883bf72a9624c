"""
Tests for the process executor.

These spawn real POSIX commands (true, false, sleep, sh).
"""
from __future__ import annotations

import errno
import os
import subprocess
import sys
import threading
import time

import pytest

from cronrunner.exceptions import CronArgumentError
from cronrunner.executor import (
    CancelReason,
    Cancellation,
    ProcessExecutor,
    SpawnErrorClassifier,
    SpawnFailureKind,
    exit_code_from_returncode,
    execute,
)
from cronrunner.models import RunStatus

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX commands")


def _pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


class TestExecute:
    def test_success(self):
        result = execute(["echo", "hello"], deadline=10)
        assert result.status == RunStatus.SUCCESS
        assert result.exit_code == 0
        assert result.pid is not None

    def test_false_fails(self):
        result = execute(["false"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code != 0

    def test_exit_code_1(self):
        result = execute(["test", "-f", "/tmp/does_not_exist/really"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == 1

    def test_real_exit_code_passed_through(self):
        result = execute(["sh", "-c", "exit 42"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == 42

    def test_not_found(self):
        result = execute(["invalidornonexistentcommand"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == 127
        assert result.spawn_failure == SpawnFailureKind.NOT_FOUND

    def test_permission_denied(self):
        result = execute(["/dev/null"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == 126
        assert result.spawn_failure == SpawnFailureKind.PERMISSION_DENIED

    def test_timeout_kills_child(self):
        started = time.monotonic()
        result = execute(["sleep", "5"], deadline=0.5)
        elapsed = time.monotonic() - started

        assert result.status == RunStatus.TIMEOUT
        assert result.exit_code == 1
        assert elapsed < 4
        assert not _pid_running(result.pid)

    def test_killed_by_signal_is_unknown_exit(self):
        result = execute(["sh", "-c", "kill -TERM $$"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == -1

    def test_empty_command_line(self):
        with pytest.raises(CronArgumentError):
            execute([], deadline=10)

    def test_unclassified_spawn_error_is_unknown(self):
        def broken_popen(args):
            raise OSError(errno.E2BIG, "Argument list too long")

        result = ProcessExecutor(popen=broken_popen).execute(["anything"], deadline=1)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == -1
        assert result.spawn_failure == SpawnFailureKind.UNKNOWN
        assert "Argument list too long" in result.error

    def test_null_byte_in_args_is_unknown_failure(self):
        result = execute(["echo", "a\0b"], deadline=10)
        assert result.status == RunStatus.FAIL
        assert result.exit_code == -1


class TestCancellation:
    def test_external_cancel_terminates(self):
        cancellation = Cancellation()
        timer = threading.Timer(0.3, cancellation.cancel, args=(CancelReason.EXTERNAL,))
        timer.start()
        try:
            result = execute(["sleep", "5"], deadline=10, cancellation=cancellation)
        finally:
            timer.cancel()

        assert result.status == RunStatus.TERMINATED
        assert not _pid_running(result.pid)

    def test_first_cancel_wins(self):
        cancellation = Cancellation()
        assert cancellation.cancel(CancelReason.EXTERNAL) is True
        assert cancellation.cancel(CancelReason.DEADLINE) is False
        assert cancellation.reason is CancelReason.EXTERNAL

    def test_cancel_before_attach_kills_on_attach(self):
        cancellation = Cancellation()
        cancellation.cancel(CancelReason.EXTERNAL)

        proc = subprocess.Popen(["sleep", "5"])
        cancellation.attach(proc)
        assert proc.wait(timeout=5) < 0


class TestSpawnErrorClassifier:
    def test_type_rules(self):
        classifier = SpawnErrorClassifier()
        assert classifier.classify(FileNotFoundError(errno.ENOENT, "x")) == SpawnFailureKind.NOT_FOUND
        assert classifier.classify(PermissionError(errno.EACCES, "x")) == SpawnFailureKind.PERMISSION_DENIED

    def test_errno_rule(self):
        exc = OSError(errno.EACCES, "denied")
        assert SpawnErrorClassifier().classify(exc) == SpawnFailureKind.PERMISSION_DENIED

    def test_message_rule(self):
        exc = RuntimeError("exec: executable file not found in $PATH")
        assert SpawnErrorClassifier().classify(exc) == SpawnFailureKind.NOT_FOUND

    def test_unknown_fallback(self):
        exc = OSError(errno.ENOEXEC, "Exec format error")
        assert SpawnErrorClassifier().classify(exc) == SpawnFailureKind.UNKNOWN
        assert SpawnFailureKind.UNKNOWN.exit_code == -1

    def test_custom_rule_first(self):
        classifier = SpawnErrorClassifier()
        classifier.add_rule(lambda exc: SpawnFailureKind.PERMISSION_DENIED, first=True)
        assert classifier.classify(FileNotFoundError()) == SpawnFailureKind.PERMISSION_DENIED

    def test_no_rules(self):
        assert SpawnErrorClassifier(rules=[]).classify(PermissionError()) == SpawnFailureKind.UNKNOWN


def test_exit_code_from_returncode():
    assert exit_code_from_returncode(0) == 0
    assert exit_code_from_returncode(3) == 3
    assert exit_code_from_returncode(-9) == -1
    assert exit_code_from_returncode(-15) == -1
