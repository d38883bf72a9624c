"""
CronRun: supervises one execution of a command.

Lifecycle:
    INIT ──run()──► RUNNING ──► SUCCESS | FAIL | TIMEOUT | TERMINATED ──► FINALIZED

The executor runs on a worker thread while the main thread watches SIGINT,
SIGTERM and SIGHUP. Both report into one queue.SimpleQueue and the controller
takes exactly one arrival from it:

    worker thread ── ExecutionResult ──┐
                                       ├──► SimpleQueue ──get() once──► controller
    signal handler ─── signum ─────────┘

If a signal arrives first the run is TERMINATED and the child is still killed
through the shared Cancellation, then the worker is reaped.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Sequence

from cronrunner import telemetry
from cronrunner.config import CronConfig
from cronrunner.exceptions import CronArgumentError, CronStateError
from cronrunner.executor import (
    CancelReason,
    Cancellation,
    ExecutionResult,
    ProcessExecutor,
)
from cronrunner.metrics import TextfileExporter, build_run_samples, render
from cronrunner.models import EXIT_UNKNOWN, RunRecord, RunStatus, utc_now
from cronrunner.namespace import derive_namespace, derive_prefix
from cronrunner.signals import SignalWatch, exit_code_for_signal, signal_name

logger = logging.getLogger(__name__)

NO_ARGS_MESSAGE = "No arguments provided. Nothing to do. Run 'help' for usage."

# How long to wait for the worker after killing the child on a signal.
REAP_TIMEOUT_SECONDS = 5.0


class RunState(str, Enum):
    INIT = "init"
    RUNNING = "running"
    FINISHED = "finished"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class _Arrival:
    result: Optional[ExecutionResult] = None
    signum: Optional[int] = None


class CronRun:
    """
    One supervised run.

    Args:
        args: Command to execute (program first).
        config: Immutable configuration for this invocation.
        executor: Process executor (tests may inject one).
        exporter: Metrics writer; defaults to config.metrics_dir.

    Raises:
        CronArgumentError: If args is empty.

    Example:
        run = CronRun(["echo", "hello"], load_config())
        record = run.run()
        print(record.status, record.exit_code)
    """

    def __init__(
        self,
        args: Sequence[str],
        config: Optional[CronConfig] = None,
        *,
        executor: Optional[ProcessExecutor] = None,
        exporter: Optional[TextfileExporter] = None,
    ) -> None:
        if not args:
            raise CronArgumentError(NO_ARGS_MESSAGE)
        self.config = config or CronConfig()
        self.record = RunRecord(
            args=list(args),
            timeout_seconds=self.config.timeout_seconds,
            dry_run=self.config.dry_run,
        )
        self.state = RunState.INIT
        self._executor = executor or ProcessExecutor()
        self._exporter = exporter or TextfileExporter(self.config.metrics_dir)
        self._started_at: Optional[float] = None

    @property
    def args(self) -> Sequence[str]:
        return self.record.args

    def run(self) -> RunRecord:
        """
        Execute the command and finalize the record.

        Returns:
            The RunRecord; finalized unless dry-run is configured.

        Raises:
            CronStateError: If called more than once.
            CronMetricsWriteError: If metrics are enabled and cannot be
                written. The record is already finalized at that point.
        """
        if self.state is not RunState.INIT:
            raise CronStateError(
                f"Run already started (state {self.state.value})",
                details={"state": self.state.value},
            )

        self._start()
        if self.config.dry_run:
            self._print_dry_run()
            return self.record

        with telemetry.span("cron.run", namespace=self.record.namespace):
            arrival = self._race()
            self._apply(arrival)
            self._finish()
        return self.record

    def _start(self) -> None:
        self.state = RunState.RUNNING
        self._started_at = time.monotonic()
        self.record.start_time = utc_now()
        self.record.status = RunStatus.RUNNING
        self.record.namespace = derive_namespace(self.config.namespace, self.record.args)
        self.record.prefix = derive_prefix(self.config.metrics_prefix)
        logger.info("Starting %s (namespace %s)", self.record.args, self.record.namespace)

    def _print_dry_run(self) -> None:
        if self.record.prefix:
            print(f"DRYRUN: Metric Prefix: {self.record.prefix}")
        print(f"DRYRUN: Metric Namespace: {self.record.namespace}")
        print(f"DRYRUN: Args: {self.record.args}")
        print(f"DRYRUN: Timeout: {self.config.timeout_seconds}")

    def _execute_into(self, rendezvous: queue.SimpleQueue, cancellation: Cancellation) -> None:
        try:
            result = self._executor.execute(
                self.record.args, self.config.timeout_seconds, cancellation
            )
        except Exception:
            # The controller is blocked on the rendezvous; always report.
            logger.exception("Executor failed unexpectedly")
            result = ExecutionResult(exit_code=EXIT_UNKNOWN, status=RunStatus.FAIL)
        rendezvous.put(_Arrival(result=result))

    def _race(self) -> _Arrival:
        rendezvous: queue.SimpleQueue = queue.SimpleQueue()
        cancellation = Cancellation()
        worker = threading.Thread(
            target=self._execute_into,
            args=(rendezvous, cancellation),
            name="cron-executor",
            daemon=True,
        )

        with SignalWatch(lambda signum: rendezvous.put(_Arrival(signum=signum))):
            worker.start()
            arrival = rendezvous.get()
            if arrival.signum is not None:
                logger.warning("Received %s, terminating %s", signal_name(arrival.signum), self.record.args[0])
                cancellation.cancel(CancelReason.EXTERNAL)
                worker.join(timeout=REAP_TIMEOUT_SECONDS)
                if worker.is_alive():
                    logger.error("Child process did not exit after being killed")
        return arrival

    def _apply(self, arrival: _Arrival) -> None:
        if arrival.signum is not None:
            self.record.status = RunStatus.TERMINATED
            self.record.exit_code = exit_code_for_signal(arrival.signum)
        else:
            result = arrival.result
            self.record.status = result.status
            self.record.exit_code = result.exit_code
        self.state = RunState.FINISHED

    def _finish(self) -> None:
        record = self.record
        record.end_time = utc_now()
        # Monotonic, so clock steps never skew it.
        record.duration = timedelta(seconds=time.monotonic() - self._started_at)
        record.finalize()
        self.state = RunState.FINALIZED

        telemetry.log("info", "cron run finished", **record.to_log_dict())
        logger.info(
            "Finished %s: status=%s exit_code=%d duration_ms=%d",
            record.args,
            record.status.value,
            record.exit_code,
            record.duration_ms,
        )

        if self.config.metrics_enabled:
            self.write_metrics()

    def render_metrics(self) -> str:
        record = self.record
        return render(record.namespace, record.prefix, build_run_samples(record))

    def write_metrics(self):
        """Write the metrics file for this run. Returns the written path."""
        if not self.record.finalized:
            raise CronStateError("Metrics are written only for finalized runs")
        return self._exporter.write(self.record.namespace, self.render_metrics())
