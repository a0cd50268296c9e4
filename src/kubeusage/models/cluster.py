# src/kubeusage/models/cluster.py

from pydantic import BaseModel, ConfigDict, Field


class ClusterIdentity(BaseModel):
    """
    Identifies a GKE cluster. Used as the key of the per-cluster client cache.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str = Field(..., description="GCP project hosting the cluster")
    location: str = Field(..., description="GCE zone or region of the cluster")
    name: str = Field(..., description="Cluster name")

    @property
    def key(self) -> str:
        return "/".join((self.project_id, self.location, self.name))

    @property
    def resource_name(self) -> str:
        """The cluster's resource name in the GKE API."""
        return f"projects/{self.project_id}/locations/{self.location}/clusters/{self.name}"

    def __str__(self) -> str:
        return self.key


class ClusterDescriptor(BaseModel):
    """
    Control-plane coordinates of a cluster, as resolved through the GKE API.
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="IP address or host of the cluster API server")
    ca_certificate: str = Field(..., description="Base64-encoded PEM of the cluster CA")
