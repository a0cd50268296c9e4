# src/kubeusage/core/cluster_cache.py

import asyncio
import logging
from typing import Callable, Dict, Optional

from ..collectors.container_collector import ContainerCollector
from ..models.cluster import ClusterDescriptor, ClusterIdentity
from .exceptions import ClusterResolutionError
from .k8s_client import ClusterHandle, create_cluster_handle

logger = logging.getLogger(__name__)

HandleFactory = Callable[[ClusterIdentity, ClusterDescriptor, Optional[str]], ClusterHandle]


class ClusterClientCache:
    """
    Lazily creates and memoizes one ClusterHandle per cluster for the lifetime
    of the process.

    Creation is serialized per cluster key, so concurrent callers for the same
    cluster trigger a single resolution. Failures are raised to the caller and
    not cached. There is no eviction: the number of entries is bounded by the
    number of distinct clusters seen in telemetry.
    """

    def __init__(
        self,
        container: ContainerCollector,
        token: Optional[str] = None,
        handle_factory: HandleFactory = create_cluster_handle,
    ):
        self.container = container
        self.token = token
        self.handle_factory = handle_factory
        self._handles: Dict[str, ClusterHandle] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def _lock_for(self, key: str) -> asyncio.Lock:
        # setdefault runs without awaiting, so no two coroutines get different locks.
        return self._locks.setdefault(key, asyncio.Lock())

    async def get_or_create(self, identity: ClusterIdentity) -> ClusterHandle:
        key = identity.key
        handle = self._handles.get(key)
        if handle is not None:
            return handle

        async with self._lock_for(key):
            handle = self._handles.get(key)
            if handle is not None:
                return handle

            logger.info("Kubernetes client for cluster %s not found, creating...", key)
            descriptor = await self.container.get_cluster(identity)
            try:
                handle = self.handle_factory(identity, descriptor, self.token)
            except ClusterResolutionError:
                raise
            except Exception as e:
                raise ClusterResolutionError(f"failed to create kube client for {key}: {e}") from e

            self._handles[key] = handle
            return handle

    async def close(self):
        """Closes every cached handle."""
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            try:
                await handle.close()
            except Exception as e:
                logger.warning("Error closing Kubernetes client for %s: %s", handle.identity, e)
