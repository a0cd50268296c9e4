# src/kubeusage/models/usage.py
"""
Pydantic models for the usage records exported by kubeusage. They follow the
GKE usage metering data structure so existing billing queries keep working.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field


class UsageUnit(str, Enum):
    """The base unit in which a resource usage is measured."""

    BYTES = "bytes"
    BYTE_SECONDS = "byte-seconds"
    SECONDS = "seconds"


class ResourceName(str, Enum):
    """Kubernetes resource names for which usage is exported."""

    CPU = "cpu"
    MEMORY = "memory"


class Label(BaseModel):
    """A Kubernetes label key/value pair."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


def to_label_list(labels: Dict[str, str]) -> List[Label]:
    """Converts Kubernetes-style labels into a list of Label objects, sorted by key."""
    return [Label(key=k, value=v) for k, v in sorted(labels.items())]


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str


class Usage(BaseModel):
    """The absolute usage of a cloud resource."""

    model_config = ConfigDict(frozen=True)

    amount: float = Field(..., description="The quantity of unit used")
    unit: UsageUnit = Field(..., description="The base unit in which usage is measured")


class UsageRecord(BaseModel):
    """
    Describes the usage of a cloud resource by one container over one window.
    """

    model_config = ConfigDict(frozen=True)

    # Never persisted.
    resource_id: Optional[int] = Field(None, exclude=True, description="Identifier of the consumed resource")
    region: Optional[str] = Field(None, exclude=True, description="Region of the consumed resource")

    cluster_location: str = Field(..., description="Zone or region in which the cluster resides")
    cluster_name: str = Field(..., description="Name of the Kubernetes cluster")
    namespace: str = Field(..., description="Namespace from which the usage is generated")
    resource_name: ResourceName = Field(..., description="Key of the resource in a Kubernetes ResourceList")
    sku_id: Optional[str] = Field(None, description="SKU ID of the underlying cloud resource")
    start_time: datetime = Field(..., description="When the usage began")
    end_time: datetime = Field(..., description="When the usage ended")
    fraction: float = Field(
        ...,
        description="Fraction of the underlying resource used, mean usage divided by node capacity",
    )
    cloud_resource_size: int = Field(..., description="Capacity of the underlying resource")
    labels: List[Label] = Field(default_factory=list)
    project: Project
    usage: Usage

    def __str__(self) -> str:
        fields = [
            f"cluster_location={self.cluster_location!r}",
            f"cluster_name={self.cluster_name!r}",
            f"namespace={self.namespace!r}",
            f"resource_name={self.resource_name.value!r}",
            f"sku_id={self.sku_id!r}",
            f"start_time={self.start_time.isoformat()}",
            f"end_time={self.end_time.isoformat()}",
            f"fraction={self.fraction:f}",
            f"cloud_resource_size={self.cloud_resource_size}",
            f"labels=[{', '.join(str(label) for label in self.labels)}]",
            f"project={{id={self.project.id!r}}}",
            f"usage={{amount={self.usage.amount}, unit={self.usage.unit.value}}}",
        ]
        return "{" + ", ".join(fields) + "}"

    def to_row(self) -> Dict[str, Any]:
        """Flattens the record into column name -> value for the usage table."""
        data = self.model_dump(mode="python")
        row: Dict[str, Any] = {}
        for name, _ in usage_record_columns():
            head, _, tail = name.partition("_")
            if name in data:
                value = data[name]
            elif head in data and isinstance(data[head], dict):
                value = data[head].get(tail)
            else:
                value = None
            if isinstance(value, Enum):
                value = value.value
            if name == "labels":
                value = json.dumps(value)
            row[name] = value
        return row


# Logical column types; storage backends map them to SQL types.
_SCALAR_TYPES = {str: "TEXT", float: "REAL", int: "INTEGER", bool: "BOOLEAN", datetime: "TIMESTAMP"}


def _unwrap(annotation):
    if get_origin(annotation) is Union:
        args = [a for a in get_args(annotation) if a is not type(None)]
        return args[0] if len(args) == 1 else annotation
    return annotation


def _column_type(annotation) -> str:
    annotation = _unwrap(annotation)
    if get_origin(annotation) in (list, List):
        return "JSON"
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return "TEXT"
    return _SCALAR_TYPES.get(annotation, "TEXT")


def usage_record_columns() -> List[Tuple[str, str]]:
    """
    Derives the usage table columns from the UsageRecord model.

    Excluded fields are skipped, nested models are flattened into
    '<field>_<subfield>' columns and lists are stored as JSON. Every column is
    nullable.
    """
    columns = []
    for name, field in UsageRecord.model_fields.items():
        if field.exclude:
            continue
        annotation = _unwrap(field.annotation)
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            for sub_name, sub_field in annotation.model_fields.items():
                columns.append((f"{name}_{sub_name}", _column_type(sub_field.annotation)))
        else:
            columns.append((name, _column_type(field.annotation)))
    return columns
