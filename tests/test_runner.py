"""
Tests for CronRun: lifecycle, signal race, finalization and metrics emission.
"""
from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from cronrunner import runner as runner_module
from cronrunner.config import CronConfig
from cronrunner.exceptions import (
    CronArgumentError,
    CronMetricsWriteError,
    CronStateError,
)
from cronrunner.executor import ExecutionResult, ProcessExecutor
from cronrunner.models import RunStatus
from cronrunner.runner import NO_ARGS_MESSAGE, CronRun, RunState

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals and commands")


class FixedExecutor:
    """Executor stub returning a fixed result."""

    def __init__(self, result: ExecutionResult) -> None:
        self.result = result
        self.calls = []

    def execute(self, command_line, deadline, cancellation=None):
        self.calls.append((list(command_line), deadline))
        return self.result


class ExplodingExecutor:
    def execute(self, command_line, deadline, cancellation=None):
        raise RuntimeError("boom")


def _send_later(signum: int, delay: float = 0.5) -> threading.Timer:
    timer = threading.Timer(delay, os.kill, args=(os.getpid(), signum))
    timer.start()
    return timer


class TestNew:
    def test_args_kept(self, no_metrics_config):
        run = CronRun(["echo", "hello"], no_metrics_config)
        assert run.args == ["echo", "hello"]
        assert run.state is RunState.INIT
        assert run.record.status is RunStatus.UNKNOWN
        assert run.record.exit_code == -1

    def test_no_args(self, no_metrics_config):
        with pytest.raises(CronArgumentError) as exc_info:
            CronRun([], no_metrics_config)
        assert str(exc_info.value) == NO_ARGS_MESSAGE


class TestRun:
    def test_simple_success(self, no_metrics_config):
        record = CronRun(["echo", "hello"], no_metrics_config).run()
        assert record.status is RunStatus.SUCCESS
        assert record.exit_code == 0
        assert record.finalized

    def test_simple_fail_status(self, no_metrics_config):
        record = CronRun(["false"], no_metrics_config).run()
        assert record.status is RunStatus.FAIL
        assert record.exit_code != 0
        assert record.end_time is not None

    def test_exit_code_1(self, no_metrics_config):
        record = CronRun(["cat", "/tmp/does_not_exist/this/should/not/exist.txt"], no_metrics_config).run()
        assert record.status is RunStatus.FAIL
        assert record.exit_code == 1

    def test_exit_code_126(self, no_metrics_config):
        record = CronRun(["/dev/null"], no_metrics_config).run()
        assert record.status is RunStatus.FAIL
        assert record.exit_code == 126

    def test_exit_code_127(self, no_metrics_config):
        record = CronRun(["invalidornonexistentcommand"], no_metrics_config).run()
        assert record.status is RunStatus.FAIL
        assert record.exit_code == 127

    def test_timeout(self):
        config = CronConfig(timeout_seconds=1, metrics_enabled=False)
        record = CronRun(["sleep", "3"], config).run()
        assert record.status is RunStatus.TIMEOUT
        assert record.exit_code == 1
        assert record.duration_ms < 2500

    def test_duration(self, no_metrics_config):
        record = CronRun(["sleep", "1"], no_metrics_config).run()
        assert 1000 <= record.duration_ms < 2000

    def test_duration_ignores_wall_clock_steps(self, monkeypatch, no_metrics_config):
        stamps = iter([
            datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc),
        ])
        monkeypatch.setattr(runner_module, "utc_now", lambda: next(stamps))
        executor = FixedExecutor(ExecutionResult(exit_code=0, status=RunStatus.SUCCESS))
        record = CronRun(["true"], no_metrics_config, executor=executor).run()

        assert record.end_time < record.start_time
        assert 0 <= record.duration_ms < 1000

    def test_namespace_from_config(self):
        config = CronConfig(namespace="TEST-nameSPACE!@$%^&*()-=+ TEST AGAIN", metrics_enabled=False)
        record = CronRun(["echo", "hello"], config).run()
        assert record.namespace == "test_namespace_____________test_again"

    def test_prefix_from_config(self):
        config = CronConfig(metrics_prefix="MyOrg", metrics_enabled=False)
        record = CronRun(["true"], config).run()
        assert record.prefix == "myorg_"

    def test_run_twice(self, no_metrics_config):
        run = CronRun(["true"], no_metrics_config)
        run.run()
        with pytest.raises(CronStateError):
            run.run()

    def test_finalized_record_is_immutable(self, no_metrics_config):
        record = CronRun(["true"], no_metrics_config).run()
        with pytest.raises(CronStateError):
            record.exit_code = 5
        assert record.exit_code == 0

    def test_injected_executor(self, no_metrics_config):
        executor = FixedExecutor(ExecutionResult(exit_code=3, status=RunStatus.FAIL))
        record = CronRun(["anything", "--flag"], no_metrics_config, executor=executor).run()
        assert executor.calls == [(["anything", "--flag"], no_metrics_config.timeout_seconds)]
        assert record.status is RunStatus.FAIL
        assert record.exit_code == 3

    def test_executor_crash_is_recorded_as_unknown_failure(self, no_metrics_config):
        record = CronRun(["anything"], no_metrics_config, executor=ExplodingExecutor()).run()
        assert record.status is RunStatus.FAIL
        assert record.exit_code == -1


class TestSignals:
    def test_sigint_terminates(self, no_metrics_config):
        timer = _send_later(signal.SIGINT)
        try:
            record = CronRun(["sleep", "5"], no_metrics_config).run()
        finally:
            timer.cancel()

        assert record.status is RunStatus.TERMINATED
        assert record.exit_code == 130
        assert record.duration_ms < 4000

    def test_child_killed_when_signal_wins(self, no_metrics_config):
        spawned = []

        def recording_popen(args):
            proc = subprocess.Popen(args)
            spawned.append(proc)
            return proc

        executor = ProcessExecutor(popen=recording_popen)
        timer = _send_later(signal.SIGINT)
        try:
            record = CronRun(["sleep", "5"], no_metrics_config, executor=executor).run()
        finally:
            timer.cancel()

        assert record.status is RunStatus.TERMINATED
        assert record.exit_code == 130
        assert len(spawned) == 1
        assert spawned[0].returncode is not None

    def test_sigterm_terminates(self, no_metrics_config):
        timer = _send_later(signal.SIGTERM)
        try:
            record = CronRun(["sleep", "5"], no_metrics_config).run()
        finally:
            timer.cancel()

        assert record.status is RunStatus.TERMINATED
        assert record.exit_code == 143

    def test_other_watched_signal_is_unknown_exit(self, no_metrics_config):
        timer = _send_later(signal.SIGHUP)
        try:
            record = CronRun(["sleep", "5"], no_metrics_config).run()
        finally:
            timer.cancel()

        assert record.status is RunStatus.TERMINATED
        assert record.exit_code == -1

    def test_handlers_restored(self, no_metrics_config):
        before = signal.getsignal(signal.SIGINT)
        CronRun(["true"], no_metrics_config).run()
        assert signal.getsignal(signal.SIGINT) is before


class TestDryRun:
    def test_prints_and_spawns_nothing(self, tmp_path, capsys):
        config = CronConfig(dry_run=True, metrics_dir=str(tmp_path), metrics_prefix="org", timeout_seconds=60)
        executor = FixedExecutor(ExecutionResult(exit_code=0, status=RunStatus.SUCCESS))
        record = CronRun(["echo", "hello world"], config, executor=executor).run()

        out = capsys.readouterr().out
        assert "DRYRUN: Metric Prefix: org_" in out
        assert "DRYRUN: Metric Namespace: echo_hello_world" in out
        assert "DRYRUN: Args: ['echo', 'hello world']" in out
        assert "DRYRUN: Timeout: 60" in out

        assert executor.calls == []
        assert record.status is RunStatus.RUNNING
        assert not record.finalized
        assert list(tmp_path.iterdir()) == []

    def test_no_prefix_line_without_prefix(self, capsys):
        CronRun(["true"], CronConfig(dry_run=True, metrics_enabled=False)).run()
        assert "Metric Prefix" not in capsys.readouterr().out


class TestMetricsEmission:
    def test_metrics_file_written(self, config):
        record = CronRun(["echo", "hello"], config).run()
        path = Path(config.metrics_dir) / "cron_echo_hello_metrics.prom"
        text = path.read_text(encoding="utf-8")

        assert 'cron_status{code="0",namespace="echo_hello",status="success"} 1' in text
        assert 'cron_exit_code{namespace="echo_hello"} 0' in text
        assert f'cron_start_time_seconds{{namespace="echo_hello"}} {int(record.start_time.timestamp())}' in text

    def test_metrics_disabled(self, tmp_path):
        config = CronConfig(metrics_enabled=False, metrics_dir=str(tmp_path))
        CronRun(["true"], config).run()
        assert list(tmp_path.iterdir()) == []

    def test_second_run_overwrites(self, tmp_path):
        ok = CronConfig(namespace="job", metrics_dir=str(tmp_path))
        CronRun(["true"], ok).run()
        CronRun(["false"], ok).run()

        text = (tmp_path / "cron_job_metrics.prom").read_text(encoding="utf-8")
        assert 'cron_status{code="1",namespace="job",status="fail"} 1' in text
        assert 'cron_status{code="0",namespace="job",status="success"} 0' in text
        assert text.count("# HELP cron_status_code ") == 1

    def test_write_error_keeps_outcome(self, tmp_path):
        config = CronConfig(metrics_dir=str(tmp_path / "missing"))
        run = CronRun(["true"], config)
        with pytest.raises(CronMetricsWriteError) as exc_info:
            run.run()

        assert isinstance(exc_info.value, OSError)
        assert run.record.finalized
        assert run.record.status is RunStatus.SUCCESS
        assert run.record.exit_code == 0

    def test_write_metrics_requires_finalized_run(self, config):
        with pytest.raises(CronStateError):
            CronRun(["true"], config).write_metrics()
