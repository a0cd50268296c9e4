# tests/core/test_exporter.py

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio.client import V1ObjectMeta, V1Pod, V1PodSpec

from kubeusage.core.calculator import RESOURCE_KINDS
from kubeusage.core.config import Config
from kubeusage.core.exceptions import (
    ClusterResolutionError,
    NodeNotFoundError,
    QueryError,
    ResourceLookupError,
    TelemetryError,
)
from kubeusage.core.exporter import ExportCycle
from kubeusage.models.node import NodeCapacityRecord
from kubeusage.models.usage import ResourceName, UsageUnit
from kubeusage.storage.sqlite_node_repository import SQLiteNodeCapacityStore

CPU_KIND = RESOURCE_KINDS[0]
MEMORY_KIND = RESOURCE_KINDS[1]


def make_pod(node_name="node-1", labels=None):
    return V1Pod(
        metadata=V1ObjectMeta(name="web-0", namespace="default", labels=labels or {"app": "web"}),
        spec=V1PodSpec(node_name=node_name, containers=[]),
    )


def make_node(**overrides):
    values = dict(
        project_id="my-project",
        cluster_name="prod",
        cluster_location="europe-west1-b",
        node_name="node-1",
        machine_type="e2-standard-4",
        region="europe-west1",
        cpu_capacity=1,
        mem_capacity=4 * 1024**3,
    )
    values.update(overrides)
    return NodeCapacityRecord(**values)


@pytest.fixture
def settings():
    return Config()


@pytest.fixture
def handle():
    handle = MagicMock()
    handle.get_pod = AsyncMock(return_value=make_pod())
    handle.get_node = AsyncMock(return_value=make_node())
    return handle


@pytest.fixture
def clusters(handle):
    clusters = MagicMock()
    clusters.get_or_create = AsyncMock(return_value=handle)
    return clusters


@pytest.fixture
def repository():
    repository = MagicMock()
    repository.write_usage = AsyncMock(side_effect=lambda records: len(records))
    return repository


@pytest.fixture
async def node_store(mock_db_manager):
    store = SQLiteNodeCapacityStore(mock_db_manager, ttl_seconds=300)
    await store.setup()
    return store


def make_monitoring(groups_by_kind):
    """groups_by_kind maps 'cpu'/'memory' to a group list or an exception."""
    monitoring = MagicMock()

    async def query(text):
        key = "cpu" if "cpu/core_usage_time" in text else "memory"
        result = groups_by_kind.get(key, [])
        if isinstance(result, Exception):
            raise result
        return result

    monitoring.query = AsyncMock(side_effect=query)
    return monitoring


@pytest.mark.asyncio
async def test_end_to_end_cycle_skips_malformed_series(
    group_factory, clusters, handle, node_store, repository, settings
):
    """
    One valid series and one with five labels: a single record is written
    and the malformed series is skipped without failing the cycle.
    """
    valid = group_factory([0.5, 0.5, 0.5])
    malformed = group_factory([1.0], labels=["my-project", "europe-west1-b", "prod", "default", "web-1"])
    monitoring = make_monitoring({"cpu": [valid, malformed]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings, kinds=[CPU_KIND])

    written = await cycle.run_and_flush()

    assert written == 1
    repository.write_usage.assert_awaited_once()
    (record,) = repository.write_usage.await_args.args[0]
    assert record.usage.amount == pytest.approx(90.0)
    assert record.usage.unit is UsageUnit.SECONDS
    assert record.fraction == pytest.approx(0.5)
    assert record.cloud_resource_size == 1
    assert record.resource_name is ResourceName.CPU
    assert record.project.id == "my-project"
    assert record.cluster_name == "prod"
    assert record.cluster_location == "europe-west1-b"
    assert record.namespace == "default"
    assert record.region == "europe-west1"
    assert record.sku_id is None
    assert [str(label) for label in record.labels] == ["app=web", "container-name=nginx", "pod-name=web-0"]
    assert record.start_time == valid.samples[0].start_time
    assert record.end_time == valid.samples[-1].end_time

    handle.get_pod.assert_awaited_once_with("default", "web-0")
    handle.get_node.assert_awaited_once_with("node-1")


@pytest.mark.asyncio
async def test_memory_kind_uses_byte_seconds_and_memory_capacity(
    group_factory, clusters, node_store, repository, settings
):
    gib = 1024**3
    monitoring = make_monitoring({"memory": [group_factory([gib, gib])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings)

    records = await cycle.run()

    (record,) = records
    assert record.resource_name is ResourceName.MEMORY
    assert record.usage.unit is UsageUnit.BYTE_SECONDS
    assert record.usage.amount == pytest.approx(gib * 120)
    assert record.fraction == pytest.approx(0.25)
    assert record.cloud_resource_size == 4 * gib


@pytest.mark.asyncio
async def test_cycles_over_unchanged_input_are_identical(
    group_factory, clusters, handle, node_store, repository, settings
):
    monitoring = make_monitoring({"cpu": [group_factory([0.5, 0.5, 0.5])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings, kinds=[CPU_KIND])

    first = await cycle.run()
    second = await cycle.run()

    assert first == second
    # The second cycle is served from the node cache.
    handle.get_node.assert_awaited_once()


@pytest.mark.asyncio
async def test_telemetry_failure_skips_only_that_kind(group_factory, clusters, node_store, repository, settings):
    monitoring = make_monitoring({"cpu": TelemetryError("quota exceeded"), "memory": [group_factory([1024.0])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings)

    written = await cycle.run_and_flush()

    assert written == 1
    (record,) = repository.write_usage.await_args.args[0]
    assert record.resource_name is ResourceName.MEMORY


@pytest.mark.asyncio
async def test_sink_failure_is_logged_not_raised(group_factory, clusters, node_store, settings, caplog):
    repository = MagicMock()
    repository.write_usage = AsyncMock(side_effect=QueryError("table is gone"))
    monitoring = make_monitoring({"cpu": [group_factory([0.5])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings, kinds=[CPU_KIND])

    written = await cycle.run_and_flush()

    assert written == 0
    repository.write_usage.assert_awaited_once()
    assert "table is gone" in caplog.text


@pytest.mark.asyncio
async def test_empty_cycle_writes_empty_batch(clusters, node_store, repository, settings):
    cycle = ExportCycle(make_monitoring({}), clusters, node_store, repository, settings=settings)

    assert await cycle.run_and_flush() == 0
    repository.write_usage.assert_awaited_once_with([])


@pytest.mark.asyncio
async def test_stale_node_is_refreshed_from_cluster(group_factory, clusters, handle, node_store, repository, settings):
    old = make_node(cpu_capacity=8, last_updated=datetime.now(timezone.utc) - timedelta(hours=1))
    await node_store.upsert(old)
    monitoring = make_monitoring({"cpu": [group_factory([0.5])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings, kinds=[CPU_KIND])

    (record,) = await cycle.run()

    handle.get_node.assert_awaited_once_with("node-1")
    assert record.cloud_resource_size == 1
    refreshed = await node_store.get("my-project", "prod", "europe-west1-b", "node-1")
    assert refreshed.cpu_capacity == 1


@pytest.mark.asyncio
async def test_fresh_node_is_served_from_cache(group_factory, clusters, handle, node_store, repository, settings):
    await node_store.upsert(make_node(cpu_capacity=2))
    monitoring = make_monitoring({"cpu": [group_factory([0.5])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings, kinds=[CPU_KIND])

    (record,) = await cycle.run()

    handle.get_node.assert_not_awaited()
    assert record.fraction == pytest.approx(0.25)


@pytest.mark.asyncio
async def test_cache_write_failure_skips_group(group_factory, clusters, handle, repository, settings):
    node_store = MagicMock()
    node_store.get = AsyncMock(side_effect=NodeNotFoundError("row not found"))
    node_store.upsert = AsyncMock(side_effect=QueryError("disk full"))
    monitoring = make_monitoring({"cpu": [group_factory([0.5])]})
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings, kinds=[CPU_KIND])

    assert await cycle.run() == []
    handle.get_node.assert_awaited_once()


@pytest.mark.asyncio
async def test_lookup_failures_skip_group(group_factory, clusters, handle, node_store, repository, settings):
    handle.get_pod = AsyncMock(
        side_effect=[ResourceLookupError("pod not found"), make_pod(node_name=None), make_pod()]
    )
    groups = [group_factory([0.5]), group_factory([0.5]), group_factory([0.5])]
    settings.EXPORT_CONCURRENCY = 1
    cycle = ExportCycle(
        make_monitoring({"cpu": groups}), clusters, node_store, repository, settings=settings, kinds=[CPU_KIND]
    )

    records = await cycle.run()

    assert len(records) == 1


@pytest.mark.asyncio
async def test_cluster_resolution_failure_skips_group(group_factory, node_store, repository, settings):
    clusters = MagicMock()
    clusters.get_or_create = AsyncMock(side_effect=ClusterResolutionError("cluster not found"))
    cycle = ExportCycle(
        make_monitoring({"cpu": [group_factory([0.5])]}),
        clusters,
        node_store,
        repository,
        settings=settings,
        kinds=[CPU_KIND],
    )

    assert await cycle.run() == []


@pytest.mark.asyncio
async def test_zero_capacity_node_skips_group(group_factory, clusters, handle, node_store, repository, settings):
    handle.get_node = AsyncMock(return_value=make_node(cpu_capacity=0))
    cycle = ExportCycle(
        make_monitoring({"cpu": [group_factory([0.5])]}),
        clusters,
        node_store,
        repository,
        settings=settings,
        kinds=[CPU_KIND],
    )

    assert await cycle.run() == []


@pytest.mark.asyncio
async def test_empty_sample_window_skips_group(group_factory, clusters, node_store, repository, settings):
    cycle = ExportCycle(
        make_monitoring({"cpu": [group_factory([])]}),
        clusters,
        node_store,
        repository,
        settings=settings,
        kinds=[CPU_KIND],
    )

    assert await cycle.run() == []


@pytest.mark.asyncio
async def test_group_resolution_is_bounded(group_factory, clusters, handle, node_store, repository, settings):
    in_flight = 0
    peak = 0

    async def get_pod(namespace, name):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return make_pod()

    handle.get_pod = AsyncMock(side_effect=get_pod)
    settings.EXPORT_CONCURRENCY = 2
    groups = [group_factory([0.5]) for _ in range(6)]
    cycle = ExportCycle(
        make_monitoring({"cpu": groups}), clusters, node_store, repository, settings=settings, kinds=[CPU_KIND]
    )

    records = await cycle.run()

    assert len(records) == 6
    assert peak == 2


@pytest.mark.asyncio
async def test_slow_group_times_out(group_factory, clusters, handle, node_store, repository, settings):
    async def hang(namespace, name):
        await asyncio.sleep(10)

    handle.get_pod = AsyncMock(side_effect=hang)
    settings.GROUP_TIMEOUT_SECONDS = 0.05
    cycle = ExportCycle(
        make_monitoring({"cpu": [group_factory([0.5])]}),
        clusters,
        node_store,
        repository,
        settings=settings,
        kinds=[CPU_KIND],
    )

    assert await cycle.run() == []


@pytest.mark.asyncio
async def test_cancelled_cycle_writes_nothing(clusters, node_store, repository, settings):
    started = asyncio.Event()

    async def blocking_query(text):
        started.set()
        await asyncio.sleep(3600)

    monitoring = MagicMock()
    monitoring.query = AsyncMock(side_effect=blocking_query)
    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings)

    task = asyncio.create_task(cycle.run_and_flush())
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
