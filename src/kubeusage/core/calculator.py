# src/kubeusage/core/calculator.py
"""
Turns raw telemetry samples into usage summaries and node-capacity fractions.
Everything here is pure; I/O lives in the export cycle.
"""

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterable, List

from ..data.queries import cpu_usage_time_query, memory_used_bytes_query
from ..models.node import NodeCapacityRecord
from ..models.telemetry import Sample, UsageSummary
from ..models.usage import ResourceName, UsageUnit
from .exceptions import EmptyWindowError, ZeroCapacityError


@dataclass(frozen=True)
class ResourceKind:
    """How one resource kind is queried, measured and attributed."""

    resource_name: ResourceName
    unit: UsageUnit
    build_query: Callable[[str, str, str], str]
    capacity_field: str

    def capacity_of(self, node: NodeCapacityRecord) -> int:
        return getattr(node, self.capacity_field)


RESOURCE_KINDS: List[ResourceKind] = [
    ResourceKind(
        resource_name=ResourceName.CPU,
        unit=UsageUnit.SECONDS,
        build_query=cpu_usage_time_query,
        capacity_field="cpu_capacity",
    ),
    ResourceKind(
        resource_name=ResourceName.MEMORY,
        unit=UsageUnit.BYTE_SECONDS,
        build_query=memory_used_bytes_query,
        capacity_field="mem_capacity",
    ),
]


def normalize_window(samples: Iterable[Sample], resolution_seconds: float) -> List[Sample]:
    """
    Widens zero-width intervals by one resolution, then sorts by start time,
    end time and value. Cloud Monitoring emits start == end for the first
    aligned point.
    """
    resolution = timedelta(seconds=resolution_seconds)
    window = []
    for sample in samples:
        if sample.start_time == sample.end_time:
            sample = sample.model_copy(update={"end_time": sample.end_time + resolution})
        window.append(sample)
    window.sort(key=lambda s: (s.start_time, s.end_time, s.value))
    return window


def aggregate(window: List[Sample]) -> UsageSummary:
    """
    Integrates a sorted sample window.

    Raises:
        EmptyWindowError: If the window holds no samples.
    """
    if not window:
        raise EmptyWindowError("cannot aggregate an empty sample window")

    integrated, total = 0.0, 0.0
    for sample in window:
        integrated += sample.value * sample.duration_seconds
        total += sample.value

    return UsageSummary(
        start_time=min(s.start_time for s in window),
        end_time=max(s.end_time for s in window),
        integrated_value=integrated,
        mean_value=total / len(window),
    )


def attribute(summary: UsageSummary, capacity: int) -> float:
    """
    Returns the fraction of capacity consumed on average over the window.

    Raises:
        ZeroCapacityError: If capacity is not a positive number.
    """
    if not capacity or capacity <= 0:
        raise ZeroCapacityError(f"node capacity must be positive, got {capacity!r}")
    fraction = summary.mean_value / capacity
    if not math.isfinite(fraction):
        raise ZeroCapacityError(f"non-finite fraction for mean {summary.mean_value} over capacity {capacity}")
    return fraction
