"""
Run metrics for the node_exporter textfile collector.

Provides:
- MetricSample: One named/typed/labeled value
- build_run_samples: Standard sample set for a finalized RunRecord
- render: Prometheus text exposition
- TextfileExporter: Writes cron_<namespace>_metrics.prom

Usage:
    from cronrunner.metrics import TextfileExporter, build_run_samples, render

    text = render(record.namespace, record.prefix, build_run_samples(record))
    TextfileExporter("/var/lib/node_exporter/textfile_collector").write(record.namespace, text)
"""

from cronrunner.metrics.sample import MetricSample, MetricType, gauge
from cronrunner.metrics.run_samples import build_run_samples
from cronrunner.metrics.exposition import (
    TextfileExporter,
    metrics_filename,
    render,
)

__all__ = [
    "MetricSample",
    "MetricType",
    "gauge",
    "build_run_samples",
    "render",
    "metrics_filename",
    "TextfileExporter",
]
