"""
MetricSample: one named, typed, labeled integer value.

Samples are rebuilt from the RunRecord on every write and never accumulated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict


class MetricType(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class MetricSample:
    """
    A single exposition sample.

    Attributes:
        name: Metric name without prefix.
        help: HELP text for the metric family.
        type: gauge or counter.
        value: Integer sample value.
        labels: Label name -> value; the namespace label is added on render.
    """

    name: str
    help: str
    type: MetricType
    value: int
    labels: Dict[str, str] = field(default_factory=dict)


def gauge(name: str, help: str, value: int, **labels: str) -> MetricSample:
    return MetricSample(name=name, help=help, type=MetricType.GAUGE, value=int(value), labels=dict(labels))
