# src/kubeusage/collectors/container_collector.py

import logging

import httpx

from ..core.exceptions import ClusterResolutionError
from ..models.cluster import ClusterDescriptor, ClusterIdentity
from .base_collector import BaseCollector

logger = logging.getLogger(__name__)


class ContainerCollector(BaseCollector):
    """Resolves GKE clusters to their API endpoint and CA certificate."""

    async def get_cluster(self, identity: ClusterIdentity) -> ClusterDescriptor:
        """
        Raises:
            ClusterResolutionError: If the cluster cannot be fetched or lacks an endpoint or CA.
        """
        client = self._ensure_client()
        url = f"{self.settings.CONTAINER_API_URL.rstrip('/')}/{identity.resource_name}"
        try:
            resp = await client.get(url)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise ClusterResolutionError(f"error getting cluster {identity}: {e}") from e
        except ValueError as e:
            raise ClusterResolutionError(f"error decoding cluster {identity}: {e}") from e

        endpoint = data.get("endpoint")
        ca_certificate = (data.get("masterAuth") or {}).get("clusterCaCertificate")
        if not endpoint or not ca_certificate:
            raise ClusterResolutionError(f"cluster {identity} has no endpoint or CA certificate")

        logger.debug("Resolved cluster %s to endpoint %s", identity, endpoint)
        return ClusterDescriptor(endpoint=endpoint, ca_certificate=ca_certificate)
