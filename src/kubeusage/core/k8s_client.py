import base64
import binascii
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Optional

from kubernetes_asyncio import client
from kubernetes_asyncio.client.rest import ApiException

from ..models.cluster import ClusterDescriptor, ClusterIdentity
from ..models.node import NodeCapacityRecord
from ..utils.k8s_utils import (
    INSTANCE_TYPE_LABELS,
    REGION_LABELS,
    cpu_cores,
    is_preemptible,
    memory_bytes,
    read_label,
)
from .exceptions import ClusterResolutionError, ResourceLookupError

logger = logging.getLogger(__name__)


def node_capacity_from_v1(node: client.V1Node, identity: ClusterIdentity) -> NodeCapacityRecord:
    """
    Converts a V1Node into a NodeCapacityRecord.

    Raises:
        ValueError: If the node carries an invalid preemptible label or capacity quantity.
    """
    labels = node.metadata.labels or {}
    capacity = (node.status.capacity if node.status else None) or {}
    return NodeCapacityRecord(
        project_id=identity.project_id,
        cluster_name=identity.name,
        cluster_location=identity.location,
        node_name=node.metadata.name,
        machine_type=read_label(labels, INSTANCE_TYPE_LABELS),
        preemptible=is_preemptible(labels),
        region=read_label(labels, REGION_LABELS),
        cpu_capacity=cpu_cores(capacity.get("cpu")),
        mem_capacity=memory_bytes(capacity.get("memory")),
        last_updated=datetime.now(timezone.utc),
    )


class ClusterHandle:
    """
    An authenticated Kubernetes API client bound to one cluster.
    """

    def __init__(self, identity: ClusterIdentity, api_client: client.ApiClient, ca_file: Optional[str] = None):
        self.identity = identity
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self._ca_file = ca_file

    async def get_pod(self, namespace: str, name: str) -> client.V1Pod:
        """Gets a pod with the given namespace and name."""
        try:
            return await self.core.read_namespaced_pod(name=name, namespace=namespace)
        except ApiException as e:
            raise ResourceLookupError(f"error getting pod {namespace}/{name} in {self.identity}: {e.reason}") from e

    async def get_node(self, name: str) -> NodeCapacityRecord:
        """Gets a node with the given name, converted to a capacity record."""
        try:
            node = await self.core.read_node(name=name)
        except ApiException as e:
            raise ResourceLookupError(f"error getting node {name} in {self.identity}: {e.reason}") from e
        try:
            return node_capacity_from_v1(node, self.identity)
        except ValueError as e:
            raise ResourceLookupError(f"error converting node {name}: {e}") from e

    async def close(self):
        """Close the Kubernetes API client and drop the CA file."""
        await self.api_client.close()
        if self._ca_file and os.path.exists(self._ca_file):
            os.unlink(self._ca_file)
        logger.debug("Kubernetes client for cluster %s closed.", self.identity)


def _write_ca_file(identity: ClusterIdentity, ca_certificate: str) -> str:
    try:
        pem = base64.b64decode(ca_certificate, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ClusterResolutionError(f"unable to decode CA cert for cluster {identity}: {e}") from e
    if b"BEGIN CERTIFICATE" not in pem:
        raise ClusterResolutionError(f"CA cert for cluster {identity} is not a PEM certificate")

    prefix = f"{identity.key.replace('/', '_')}-"
    with tempfile.NamedTemporaryFile(mode="wb", prefix=prefix, suffix=".crt", delete=False) as f:
        f.write(pem)
        return f.name


def create_cluster_handle(
    identity: ClusterIdentity, descriptor: ClusterDescriptor, token: Optional[str] = None
) -> ClusterHandle:
    """
    Builds a ClusterHandle talking to the cluster's API server over TLS pinned
    to its CA, authenticated with the given OAuth2 bearer token.
    """
    ca_file = _write_ca_file(identity, descriptor.ca_certificate)

    configuration = client.Configuration()
    configuration.host = f"https://{descriptor.endpoint}"
    configuration.ssl_ca_cert = ca_file
    if token:
        configuration.api_key = {"authorization": token}
        configuration.api_key_prefix = {"authorization": "Bearer"}

    logger.info("Created Kubernetes client for cluster %s at %s", identity, configuration.host)
    return ClusterHandle(identity, client.ApiClient(configuration), ca_file=ca_file)
