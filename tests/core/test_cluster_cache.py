# tests/core/test_cluster_cache.py

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from kubeusage.core.cluster_cache import ClusterClientCache
from kubeusage.core.exceptions import ClusterResolutionError
from kubeusage.models.cluster import ClusterDescriptor, ClusterIdentity

IDENTITY = ClusterIdentity(project_id="my-project", location="europe-west1-b", name="prod")
DESCRIPTOR = ClusterDescriptor(endpoint="10.0.0.1", ca_certificate="Y2E=")


@pytest.fixture
def container():
    container = MagicMock()

    async def get_cluster(identity):
        await asyncio.sleep(0.01)
        return DESCRIPTOR

    container.get_cluster = AsyncMock(side_effect=get_cluster)
    return container


@pytest.fixture
def handle_factory():
    def build(identity, descriptor, token):
        handle = MagicMock()
        handle.identity = identity
        handle.close = AsyncMock()
        return handle

    return MagicMock(side_effect=build)


@pytest.mark.asyncio
async def test_returns_same_handle_for_same_cluster(container, handle_factory):
    cache = ClusterClientCache(container, token="t", handle_factory=handle_factory)

    first = await cache.get_or_create(IDENTITY)
    second = await cache.get_or_create(IDENTITY)

    assert first is second
    assert len(cache) == 1
    container.get_cluster.assert_awaited_once_with(IDENTITY)
    handle_factory.assert_called_once_with(IDENTITY, DESCRIPTOR, "t")


@pytest.mark.asyncio
async def test_concurrent_callers_trigger_one_resolution(container, handle_factory):
    cache = ClusterClientCache(container, handle_factory=handle_factory)

    handles = await asyncio.gather(*(cache.get_or_create(IDENTITY) for _ in range(10)))

    assert all(h is handles[0] for h in handles)
    container.get_cluster.assert_awaited_once()
    handle_factory.assert_called_once()


@pytest.mark.asyncio
async def test_distinct_clusters_get_distinct_handles(container, handle_factory):
    cache = ClusterClientCache(container, handle_factory=handle_factory)
    other = ClusterIdentity(project_id="my-project", location="us-central1", name="prod")

    a = await cache.get_or_create(IDENTITY)
    b = await cache.get_or_create(other)

    assert a is not b
    assert len(cache) == 2


@pytest.mark.asyncio
async def test_resolution_failure_is_not_cached(container, handle_factory):
    container.get_cluster = AsyncMock(side_effect=[ClusterResolutionError("not found"), DESCRIPTOR])
    cache = ClusterClientCache(container, handle_factory=handle_factory)

    with pytest.raises(ClusterResolutionError):
        await cache.get_or_create(IDENTITY)
    assert len(cache) == 0

    handle = await cache.get_or_create(IDENTITY)

    assert handle is not None
    assert container.get_cluster.await_count == 2


@pytest.mark.asyncio
async def test_factory_errors_are_wrapped(container):
    factory = MagicMock(side_effect=RuntimeError("bad config"))
    cache = ClusterClientCache(container, handle_factory=factory)

    with pytest.raises(ClusterResolutionError, match="bad config"):
        await cache.get_or_create(IDENTITY)
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_close_closes_every_handle(container, handle_factory):
    cache = ClusterClientCache(container, handle_factory=handle_factory)
    handle = await cache.get_or_create(IDENTITY)

    await cache.close()

    handle.close.assert_awaited_once()
    assert len(cache) == 0
