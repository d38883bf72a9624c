"""Standard sample set exported for one finalized run."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from cronrunner.metrics.sample import MetricSample, gauge
from cronrunner.models import EXIT_CODES, STATUS_CODES, RunRecord


def _epoch_seconds(moment: Optional[datetime]) -> int:
    if moment is None:
        return 0
    return int(moment.timestamp())


def build_run_samples(record: RunRecord) -> List[MetricSample]:
    """
    Build the samples for record, in a fixed order.

    The cron_status and cron_exit families are one-hot: one sample per known
    status / named exit code, 1 only for the value that occurred, so alerts
    can match e.g. cron_status{status="timeout"} == 1 directly.
    """
    samples = [
        gauge("cron_start_time_seconds", "Start time of cronjob last run (epoch)", _epoch_seconds(record.start_time)),
        gauge("cron_end_time_seconds", "End time of cronjob last run (epoch)", _epoch_seconds(record.end_time)),
        gauge("cron_status_code", "Status code of cronjob last run", record.status.code),
        gauge("cron_exit_code", "Exit code of cronjob command last run", record.exit_code),
        gauge("cron_duration_milliseconds", "Duration of cronjob last run (milliseconds)", record.duration_ms),
        gauge("cron_timeout_seconds", "Timeout of cronjob", record.timeout_seconds),
        gauge("cron_dryrun", "Dryrun mode", int(record.dry_run)),
    ]

    for status, code in STATUS_CODES.items():
        samples.append(
            gauge(
                "cron_status",
                "Status of cronjob last run",
                int(status is record.status),
                code=str(code),
                status=status.value,
            )
        )

    for name, code in EXIT_CODES.items():
        samples.append(
            gauge(
                "cron_exit",
                "Exit of cronjob last run",
                int(code == record.exit_code),
                code=str(code),
                exit=name.value,
            )
        )

    return samples
