"""Metrics-safe namespace and prefix derivation."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

# https://prometheus.io/docs/concepts/data_model/#metric-names-and-labels
METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")

REPLACED_CHARACTERS = ". -/\\:;,=()[]{}<>|?*\"'`~!@#$%^&+"

_REPLACEMENTS = str.maketrans({char: "_" for char in REPLACED_CHARACTERS})

RANDOM_NAMESPACE_PREFIX = "randomid_"


def _random_id() -> str:
    return uuid.uuid4().hex


def is_valid_metric_name(value: str) -> bool:
    return METRIC_NAME_RE.match(value) is not None


def sanitize(value: str) -> str:
    """Replace separator/punctuation characters with "_", strip "_", lowercase.

    Adjacent replacements are not collapsed.
    """
    return value.translate(_REPLACEMENTS).strip("_").lower()


def derive_namespace(
    configured_namespace: str,
    args: Sequence[str],
    *,
    id_factory: Callable[[], str] = _random_id,
) -> str:
    """
    Compute the namespace used as metrics label and in the metrics file name.

    The configured namespace wins when non-empty; otherwise the command
    arguments joined with "_" are used. Arguments may contain secrets, so set
    a namespace explicitly for commands that take credentials.

    If the sanitized value is still not a valid metric name (empty, or
    containing non-ASCII characters), a random namespace is generated. The
    run is still reported, but each such run lands in a different file.
    """
    seed = configured_namespace or "_".join(args)
    namespace = sanitize(seed)
    if is_valid_metric_name(namespace):
        return namespace

    generated = RANDOM_NAMESPACE_PREFIX + id_factory()
    logger.warning(
        "Invalid namespace %r derived from %r: generated %s", namespace, seed, generated
    )
    return generated


def derive_prefix(configured_prefix: str) -> str:
    """Normalise a metric-name prefix: "" stays "", anything else ends in "_"."""
    if not configured_prefix:
        return ""
    prefix = sanitize(configured_prefix)
    if not prefix or not is_valid_metric_name(prefix):
        logger.warning("Ignoring invalid metrics prefix %r", configured_prefix)
        return ""
    return prefix + "_"
