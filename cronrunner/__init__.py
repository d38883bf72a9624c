"""
cronrunner - Run a cron command under a deadline and export the outcome.

Wraps one command per invocation, classifies the result into a RunStatus and
exit code, and writes a Prometheus textfile for node_exporter:

    CRON_TIMEOUT=600 cron-runner /usr/local/bin/backup.sh --full

Library usage:
    from cronrunner import CronRun, load_config

    record = CronRun(["echo", "hello"], load_config()).run()
    print(record.status, record.exit_code, record.duration_ms)
"""

# =============================================================================
# Core API
# =============================================================================
from cronrunner.config import CronConfig, load_config  # noqa: F401
from cronrunner.runner import CronRun  # noqa: F401
from cronrunner.executor import (  # noqa: F401
    Cancellation,
    ExecutionResult,
    ProcessExecutor,
    SpawnErrorClassifier,
    SpawnFailureKind,
    execute,
)
from cronrunner.namespace import derive_namespace, derive_prefix  # noqa: F401

# =============================================================================
# Data types
# =============================================================================
from cronrunner.models import (  # noqa: F401
    ExitCodeName,
    RunRecord,
    RunStatus,
)

# =============================================================================
# Typed exceptions
# =============================================================================
from cronrunner.exceptions import (
    CronError,
    CronArgumentError,
    CronConfigError,
    CronStateError,
    CronSpawnError,
    CronMetricsWriteError,
)

__all__ = [
    "CronConfig",
    "load_config",
    "CronRun",
    "Cancellation",
    "ExecutionResult",
    "ProcessExecutor",
    "SpawnErrorClassifier",
    "SpawnFailureKind",
    "execute",
    "derive_namespace",
    "derive_prefix",
    "ExitCodeName",
    "RunRecord",
    "RunStatus",
    "CronError",
    "CronArgumentError",
    "CronConfigError",
    "CronStateError",
    "CronSpawnError",
    "CronMetricsWriteError",
]
