"""Optional Logfire integration for run spans and lifecycle logs."""
from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

_logfire = None
_configured = False


def _load_logfire():
    global _logfire
    if _logfire is not None:
        return _logfire
    try:
        import logfire
    except ImportError:
        _logfire = False
        return _logfire
    _logfire = logfire
    return _logfire


def _env_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _stderr_enabled() -> bool:
    # Off by default: stderr belongs to the child command.
    return _env_truthy(os.getenv("CRON_TELEMETRY_STDERR"))


def enabled() -> bool:
    logfire = _load_logfire()
    if not logfire:
        return False
    return _env_truthy(os.getenv("CRON_LOGFIRE"))


def configure() -> bool:
    logfire = _load_logfire()
    if not logfire or not enabled():
        return False
    global _configured
    if not _configured:
        try:
            logfire.configure(console=False, service_name="cron-runner")
        except Exception as exc:  # noqa: BLE001
            logger.debug("Logfire configuration failed: %s", exc)
            return False
        _configured = True
    return True


@contextmanager
def span(name: str, **attrs: Any) -> Iterator[None]:
    if not configure():
        yield
        return
    with _logfire.span(name, **attrs):
        yield


def log(level: str, message: str, **attrs: Any) -> None:
    if _stderr_enabled():
        print(f"[telemetry] {message} {attrs}", file=sys.stderr)
    if not configure():
        return
    fn = getattr(_logfire, level, None) or _logfire.info
    fn(message, **attrs)
