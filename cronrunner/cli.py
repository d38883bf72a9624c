from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional

from cronrunner.config import CronConfig, load_config
from cronrunner.exceptions import CronError
from cronrunner.models import validate_code_tables
from cronrunner.runner import CronRun

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_ERROR = 1


def usage(config: CronConfig) -> str:
    # Options are environment variables, set globally (profile) or inline:
    #   CRON_DRYRUN=true cron-runner echo 'hello world'
    return "\n".join(
        [
            "Usage: cron-runner <any-command-or-script> [args]",
            "Example: CRON_DRYRUN=true cron-runner echo 'hello world'",
            "Example: cron-runner php /path/to/script.php",
            "",
            "Config Options (set as env vars):",
            f"  CRON_TIMEOUT: {config.timeout_seconds}",
            f"  CRON_METRICS: {str(config.metrics_enabled).lower()}",
            f"  CRON_METRICS_PREFIX: {config.metrics_prefix}",
            f"  CRON_METRICS_DIR: {config.metrics_dir}",
            f"  CRON_NAMESPACE: {config.namespace}",
            f"  CRON_DRYRUN: {str(config.dry_run).lower()}",
            f"  CRON_MIRROR_EXIT_CODE: {str(config.mirror_exit_code).lower()}",
            f"  CRON_LOG_LEVEL: {config.log_level}",
        ]
    )


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def process_exit_code(config: CronConfig, child_exit_code: int) -> int:
    """Exit code for this program after a completed run.

    Mirroring is opt-in; codes outside 0..255 cannot be passed through and
    become 1.
    """
    if not config.mirror_exit_code:
        return EXIT_OK
    if 0 <= child_exit_code <= 255:
        return child_exit_code
    return EXIT_ERROR


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)

    try:
        validate_code_tables()
        config = load_config()
    except CronError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR

    _setup_logging(config.log_level)

    if args == ["help"]:
        print(usage(config))
        return EXIT_OK

    # Metrics files must be readable by the collector but not world writable.
    old_umask = os.umask(0o022)
    try:
        run = CronRun(args, config)
        record = run.run()
    except CronError as exc:
        logger.debug("Run failed: %s", exc.to_dict())
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        os.umask(old_umask)

    if not record.finalized:
        return EXIT_OK
    return process_exit_code(config, record.exit_code)


if __name__ == "__main__":
    raise SystemExit(main())
