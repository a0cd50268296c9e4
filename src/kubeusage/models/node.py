# src/kubeusage/models/node.py

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def node_cache_key(project_id: str, cluster_name: str, cluster_location: str, node_name: str) -> str:
    # GCP names cannot contain "/", so distinct nodes never share a key.
    return "/".join((project_id, cluster_name, cluster_location, node_name))


class NodeCapacityRecord(BaseModel):
    """
    Pydantic model for the cached capacity and placement of a cluster node.

    Attributes:
        project_id: GCP project hosting the cluster
        cluster_name: Name of the cluster owning the node
        cluster_location: Zone or region of the cluster
        node_name: Node name
        machine_type: Instance type (e.g., 'e2-standard-4')
        preemptible: Whether the node is a preemptible or spot VM
        region: Cloud region of the node
        cpu_capacity: CPU capacity in whole cores
        mem_capacity: Memory capacity in bytes
        last_updated: When the record was read from the cluster
    """

    model_config = ConfigDict(extra="forbid")

    project_id: str
    cluster_name: str
    cluster_location: str
    node_name: str
    machine_type: str = ""
    preemptible: bool = False
    region: str = ""
    cpu_capacity: int = Field(0, description="CPU capacity in cores")
    mem_capacity: int = Field(0, description="Memory capacity in bytes")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return node_cache_key(self.project_id, self.cluster_name, self.cluster_location, self.node_name)

    def is_stale(self, max_age_seconds: float, now: datetime = None) -> bool:
        """True when the record is older than max_age_seconds."""
        now = now or datetime.now(timezone.utc)
        last = self.last_updated
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return (now - last).total_seconds() > max_age_seconds
