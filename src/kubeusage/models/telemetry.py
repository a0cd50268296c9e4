# src/kubeusage/models/telemetry.py
"""
Pydantic models for data returned by the telemetry collaborator and for the
values derived from it by the usage calculator.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..core.exceptions import MalformedLabelsError


class Sample(BaseModel):
    """One aligned point of a time series: a value over [start_time, end_time]."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime
    end_time: datetime
    value: float

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


class TimeSeriesGroup(BaseModel):
    """
    A label-grouped metric stream: positional label values plus its samples.
    """

    label_values: List[str] = Field(default_factory=list)
    samples: List[Sample] = Field(default_factory=list)


class MetricLabels(BaseModel):
    """
    The six label values identifying a container's time series, in query order.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    location: str
    cluster_name: str
    namespace: str
    pod_name: str
    container: str

    @classmethod
    def from_values(cls, values: List[str]) -> "MetricLabels":
        """
        Decodes positional label values.

        Raises:
            MalformedLabelsError: If the number of values is not exactly six.
        """
        fields = list(cls.model_fields)
        if len(values) != len(fields):
            raise MalformedLabelsError(
                f"expected {len(fields)} label values ({', '.join(fields)}), got {len(values)}: {values}"
            )
        return cls(**dict(zip(fields, values)))


class UsageSummary(BaseModel):
    """Usage derived from a sample window."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime
    end_time: datetime
    integrated_value: float = Field(..., description="Sum of value x interval duration, in value-seconds")
    mean_value: float = Field(..., description="Arithmetic mean of the sample values")
