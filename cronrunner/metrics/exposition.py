"""
Prometheus text exposition for the node_exporter textfile collector.

Rendered by hand, without the Prometheus client library:

    # HELP <prefix><name> <help>
    # TYPE <prefix><name> <type>
    <prefix><name>{<label>="<value>",...} <value>

Labels are sorted by name and every sample carries the namespace label.
Label values are written verbatim (no quote escaping); namespaces are
sanitized upstream so they never contain quotes.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Union

from cronrunner.exceptions import CronMetricsWriteError
from cronrunner.metrics.sample import MetricSample

logger = logging.getLogger(__name__)

METRICS_FILE_MODE = 0o644


def _format_labels(labels: Dict[str, str]) -> str:
    return ",".join(f'{key}="{labels[key]}"' for key in sorted(labels))


def render(namespace: str, prefix: str, samples: Iterable[MetricSample]) -> str:
    """
    Serialize samples to exposition text.

    Samples sharing a name form one family with a single HELP/TYPE header;
    families appear in order of first occurrence. Output is byte-stable for
    identical input and ends with a newline.
    """
    families: Dict[str, List[MetricSample]] = {}
    for sample in samples:
        families.setdefault(sample.name, []).append(sample)

    lines: List[str] = []
    for name, members in families.items():
        metric = f"{prefix}{name}"
        head = members[0]
        lines.append(f"# HELP {metric} {head.help}")
        lines.append(f"# TYPE {metric} {head.type.value}")
        for sample in members:
            labels = {**sample.labels, "namespace": namespace}
            lines.append(f"{metric}{{{_format_labels(labels)}}} {sample.value}")

    return "\n".join(lines) + "\n"


def metrics_filename(namespace: str) -> str:
    return f"cron_{namespace}_metrics.prom"


class TextfileExporter:
    """
    Writes one metrics file per namespace into the collector directory.

    Each write replaces the whole file: content goes to a temporary file in
    the same directory which is then renamed over the target, so the
    collector never reads a partial file.
    """

    def __init__(self, metrics_dir: Union[str, Path]) -> None:
        self.metrics_dir = Path(metrics_dir)

    def path_for(self, namespace: str) -> Path:
        return self.metrics_dir / metrics_filename(namespace)

    def write(self, namespace: str, text: str) -> Path:
        """
        Write text as the metrics file for namespace.

        Raises:
            CronMetricsWriteError: On any filesystem failure.
        """
        target = self.path_for(namespace)
        tmp_path = None
        try:
            # The collector only reads *.prom, so the temp file is ignored.
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".cron_{namespace}_", suffix=".tmp", dir=self.metrics_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.chmod(tmp_path, METRICS_FILE_MODE)
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise CronMetricsWriteError(
                f"Failed to write metrics to {target}: {exc}",
                path=str(target),
            ) from exc

        logger.debug("Wrote metrics for %s to %s", namespace, target)
        return target
