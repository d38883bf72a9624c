"""
Run configuration from environment variables.

Built once at startup and passed explicitly into CronRun; nothing reads the
environment after load_config() returns.

Usage:
    from cronrunner.config import load_config

    config = load_config()
    print(config.timeout_seconds, config.metrics_dir)
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from cronrunner.exceptions import CronConfigError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 86400  # 24 hours
DEFAULT_METRICS_DIR = "/var/lib/node_exporter/textfile_collector"
DEFAULT_LOG_LEVEL = "WARNING"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CronConfig(BaseModel):
    """
    Immutable run configuration.

    Attributes:
        timeout_seconds: Wall-clock deadline for the child command.
        namespace: Namespace override; derived from the command when empty.
        dry_run: Print what would run, spawn nothing, write no metrics.
        metrics_enabled: Write the textfile metrics after each run.
        metrics_prefix: Optional metric-name prefix.
        metrics_dir: Directory scraped by the textfile collector.
        mirror_exit_code: Exit with the child's exit code instead of 0.
        log_level: Root logging level for the CLI.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: int = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    namespace: str = ""
    dry_run: bool = False
    metrics_enabled: bool = True
    metrics_prefix: str = ""
    metrics_dir: str = DEFAULT_METRICS_DIR
    mirror_exit_code: bool = False
    log_level: str = DEFAULT_LOG_LEVEL


def env_str(environ: Mapping[str, str], key: str, default: str) -> str:
    return environ.get(key, default)


def env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    value = environ.get(key)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.error("Invalid integer value for %s: %r (using %d)", key, value, default)
        return default


def env_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    # Only the exact strings "true" and "false" are accepted.
    value = environ.get(key)
    if value is None:
        return default
    if value == "true":
        return True
    if value == "false":
        return False
    logger.error("Invalid boolean value for %s: %r (using %s)", key, value, default)
    return default


def load_config(environ: Optional[Mapping[str, str]] = None) -> CronConfig:
    """
    Build a CronConfig from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Raises:
        CronConfigError: If a value parses but is out of range.
    """
    env = os.environ if environ is None else environ

    timeout = env_int(env, "CRON_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
    if timeout <= 0:
        raise CronConfigError(
            f"CRON_TIMEOUT must be a positive number of seconds, got {timeout}",
            key="CRON_TIMEOUT",
            details={"value": timeout},
        )

    log_level = env_str(env, "CRON_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if log_level not in _LOG_LEVELS:
        raise CronConfigError(
            f"CRON_LOG_LEVEL must be one of: {', '.join(_LOG_LEVELS)}",
            key="CRON_LOG_LEVEL",
            details={"value": log_level},
        )

    return CronConfig(
        timeout_seconds=timeout,
        namespace=env_str(env, "CRON_NAMESPACE", ""),
        dry_run=env_bool(env, "CRON_DRYRUN", False),
        metrics_enabled=env_bool(env, "CRON_METRICS", True),
        metrics_prefix=env_str(env, "CRON_METRICS_PREFIX", ""),
        metrics_dir=env_str(env, "CRON_METRICS_DIR", DEFAULT_METRICS_DIR).rstrip("/") or "/",
        mirror_exit_code=env_bool(env, "CRON_MIRROR_EXIT_CODE", False),
        log_level=log_level,
    )
