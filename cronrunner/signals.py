"""Scoped observation of external termination signals."""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType
from typing import Any, Callable, Dict, Optional, Sequence

from cronrunner.models import EXIT_SIG_INT, EXIT_SIG_TERM, EXIT_UNKNOWN

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS: tuple = tuple(
    sig
    for sig in (
        getattr(signal, "SIGINT", None),
        getattr(signal, "SIGTERM", None),
        getattr(signal, "SIGHUP", None),
    )
    if sig is not None
)


def exit_code_for_signal(signum: int) -> int:
    """SIGINT -> 130, SIGTERM -> 143, anything else -> -1."""
    if signum == signal.SIGINT:
        return EXIT_SIG_INT
    if signum == getattr(signal, "SIGTERM", None):
        return EXIT_SIG_TERM
    return EXIT_UNKNOWN


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class SignalWatch:
    """
    Route a fixed set of signals to a callback while the context is active.

    Previous handlers are restored on exit. Python only allows installing
    handlers from the main thread; elsewhere the watch observes nothing.

    on_signal runs inside the signal handler, so it must be reentrant
    (queue.SimpleQueue.put is).
    """

    def __init__(
        self,
        on_signal: Callable[[int], None],
        signals: Sequence[int] = TERMINATION_SIGNALS,
    ) -> None:
        self._on_signal = on_signal
        self._signals = tuple(signals)
        self._previous: Dict[int, Any] = {}

    @property
    def active(self) -> bool:
        return bool(self._previous)

    def _handle(self, signum: int, frame: Optional[FrameType]) -> None:
        self._on_signal(signum)

    def __enter__(self) -> "SignalWatch":
        if threading.current_thread() is not threading.main_thread():
            logger.warning("Not on the main thread; termination signals are not observed")
            return self
        for sig in self._signals:
            self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._previous.clear()
