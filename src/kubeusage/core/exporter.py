# src/kubeusage/core/exporter.py
"""
One export cycle: query usage per resource kind, attribute every container
series to a fraction of its node, and write the batch to the usage table.
"""

import asyncio
import logging
from typing import List, Optional

from ..collectors.monitoring_collector import MonitoringCollector
from ..models.cluster import ClusterIdentity
from ..models.node import NodeCapacityRecord
from ..models.telemetry import MetricLabels, TimeSeriesGroup
from ..models.usage import Project, Usage, UsageRecord, to_label_list
from ..storage.base_repository import NodeCapacityStore, UsageRepository
from .calculator import RESOURCE_KINDS, ResourceKind, aggregate, attribute, normalize_window
from .cluster_cache import ClusterClientCache
from .config import Config, config
from .exceptions import KubeUsageError, NodeNotFoundError, ResourceLookupError, TelemetryError
from .k8s_client import ClusterHandle

logger = logging.getLogger(__name__)

POD_NAME_KEY = "pod-name"
CONTAINER_NAME_KEY = "container-name"


class ExportCycle:
    """
    Orchestrates one pass of the usage attribution pipeline.

    Groups of one resource kind are resolved concurrently, bounded by
    EXPORT_CONCURRENCY, and merged in query order once all of them are done.
    A failing group is logged and skipped. The batch is written exactly once,
    after every kind has been processed; a cancelled cycle writes nothing.
    """

    def __init__(
        self,
        monitoring: MonitoringCollector,
        clusters: ClusterClientCache,
        node_store: NodeCapacityStore,
        repository: UsageRepository,
        settings: Optional[Config] = None,
        kinds: Optional[List[ResourceKind]] = None,
    ):
        self.monitoring = monitoring
        self.clusters = clusters
        self.node_store = node_store
        self.repository = repository
        self.settings = settings or config
        self.kinds = kinds if kinds is not None else RESOURCE_KINDS

    async def run(self) -> List[UsageRecord]:
        """Runs every resource kind and returns the combined batch."""
        logger.info("Start parsing and exporting metrics...")
        records: List[UsageRecord] = []
        for kind in self.kinds:
            logger.info("Exporting %s metrics...", kind.resource_name.value)
            records.extend(await self.export_kind(kind))
        return records

    async def run_and_flush(self) -> int:
        """
        Runs one cycle and writes its batch. A write failure is logged and
        not retried; the next cycle measures fresh data.

        Returns:
            The number of records written.
        """
        records = await self.run()
        logger.info("Exporting %d usage records to table '%s'...", len(records), self.settings.USAGE_TABLE_NAME)
        try:
            written = await self.repository.write_usage(records)
        except KubeUsageError as e:
            logger.error("Error exporting usage records: %s", e)
            return 0
        logger.info("Exporting usage records finished.")
        return written

    async def export_kind(self, kind: ResourceKind) -> List[UsageRecord]:
        query = kind.build_query(
            self.settings.QUERY_RESOLUTION,
            self.settings.QUERY_START,
            self.settings.QUERY_PERIOD,
        )
        try:
            groups = await self.monitoring.query(query)
        except TelemetryError as e:
            logger.error("Error found querying %s time series: %s", kind.resource_name.value, e)
            return []

        logger.info("Found %d %s data point records.", len(groups), kind.resource_name.value)
        semaphore = asyncio.Semaphore(self.settings.EXPORT_CONCURRENCY)

        async def bounded(group: TimeSeriesGroup) -> Optional[UsageRecord]:
            async with semaphore:
                return await self._resolve_or_skip(kind, group)

        results = await asyncio.gather(*(bounded(group) for group in groups))
        records = [record for record in results if record is not None]

        logger.debug("Total %s fraction=%f", kind.resource_name.value, sum(r.fraction for r in records))
        return records

    async def _resolve_or_skip(self, kind: ResourceKind, group: TimeSeriesGroup) -> Optional[UsageRecord]:
        timeout = self.settings.GROUP_TIMEOUT_SECONDS
        try:
            if timeout and timeout > 0:
                return await asyncio.wait_for(self.resolve_group(kind, group), timeout)
            return await self.resolve_group(kind, group)
        except asyncio.TimeoutError:
            logger.error("Timed out after %ss resolving series %s", timeout, group.label_values)
        except KubeUsageError as e:
            logger.error("Skipping series %s: %s", group.label_values, e)
        except Exception as e:
            logger.error("Unexpected error resolving series %s: %s", group.label_values, e, exc_info=True)
        return None

    async def resolve_group(self, kind: ResourceKind, group: TimeSeriesGroup) -> UsageRecord:
        """
        Turns one time series into a usage record.

        Raises:
            KubeUsageError: If any step fails; the caller skips the series.
        """
        labels = MetricLabels.from_values(group.label_values)
        summary = aggregate(normalize_window(group.samples, self.settings.resolution_seconds))

        identity = ClusterIdentity(
            project_id=labels.project_id,
            location=labels.location,
            name=labels.cluster_name,
        )
        handle = await self.clusters.get_or_create(identity)

        pod = await handle.get_pod(labels.namespace, labels.pod_name)
        node_name = pod.spec.node_name if pod.spec else None
        if not node_name:
            raise ResourceLookupError(f"pod {labels.namespace}/{labels.pod_name} is not bound to a node")

        node = await self.node_capacity(handle, identity, node_name)
        capacity = kind.capacity_of(node)
        fraction = attribute(summary, capacity)

        pod_labels = dict(pod.metadata.labels or {}) if pod.metadata else {}
        pod_labels[POD_NAME_KEY] = labels.pod_name
        pod_labels[CONTAINER_NAME_KEY] = labels.container

        # TODO: populate sku_id from the Cloud Billing catalog for the node's machine type and region.
        return UsageRecord(
            region=node.region or None,
            cluster_location=labels.location,
            cluster_name=labels.cluster_name,
            namespace=labels.namespace,
            resource_name=kind.resource_name,
            start_time=summary.start_time,
            end_time=summary.end_time,
            fraction=fraction,
            cloud_resource_size=capacity,
            labels=to_label_list(pod_labels),
            project=Project(id=labels.project_id),
            usage=Usage(amount=summary.integrated_value, unit=kind.unit),
        )

    async def node_capacity(
        self, handle: ClusterHandle, identity: ClusterIdentity, node_name: str
    ) -> NodeCapacityRecord:
        """
        Returns the node's capacity from the cache, refreshing it from the
        cluster when missing or stale. A failed cache write fails the lookup.
        """
        try:
            return await self.node_store.get(identity.project_id, identity.name, identity.location, node_name)
        except NodeNotFoundError as e:
            logger.debug("Refreshing node %s from cluster %s: %s", node_name, identity, e)

        node = await handle.get_node(node_name)
        await self.node_store.upsert(node)
        return node
