# src/kubeusage/core/factory.py
"""
Factory functions that build the export pipeline and its collaborators once
at startup.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..collectors.container_collector import ContainerCollector
from ..collectors.monitoring_collector import MonitoringCollector
from ..storage.base_repository import UsageRepository
from ..storage.postgres_repository import PostgresUsageRepository
from ..storage.sqlite_node_repository import SQLiteNodeCapacityStore
from ..storage.sqlite_repository import SQLiteUsageRepository
from .cluster_cache import ClusterClientCache
from .config import Config, config
from .db import DatabaseManager
from .exporter import ExportCycle

logger = logging.getLogger(__name__)


def get_usage_repository(db_manager: DatabaseManager, settings: Config) -> UsageRepository:
    """
    Returns the usage repository matching DB_TYPE.
    """
    if settings.DB_TYPE == "sqlite":
        logger.info("Using SQLite usage repository.")
        return SQLiteUsageRepository(db_manager, settings.USAGE_TABLE_NAME)
    elif settings.DB_TYPE == "postgres":
        logger.info("Using PostgreSQL usage repository.")
        return PostgresUsageRepository(db_manager, settings.USAGE_TABLE_NAME)
    else:
        raise NotImplementedError(f"Usage repository for DB_TYPE '{settings.DB_TYPE}' not implemented.")


@dataclass
class Pipeline:
    """Every long-lived object of the process, built once and closed on shutdown."""

    monitoring: MonitoringCollector
    container: ContainerCollector
    clusters: ClusterClientCache
    node_db: DatabaseManager
    node_store: SQLiteNodeCapacityStore
    usage_db: DatabaseManager
    repository: UsageRepository
    cycle: ExportCycle

    async def setup(self):
        """
        Connects the databases and creates missing tables. Errors are fatal.
        """
        await self.node_db.connect()
        await self.node_store.setup()
        await self.usage_db.connect()
        await self.repository.ensure_table()

    async def close(self):
        """Closes every collaborator, logging rather than raising on failure."""
        for name, closer in (
            ("cluster clients", self.clusters.close),
            ("monitoring client", self.monitoring.close),
            ("container client", self.container.close),
            ("node cache", self.node_store.close),
            ("usage database", self.usage_db.close),
        ):
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")


def build_pipeline(settings: Optional[Config] = None) -> Pipeline:
    """
    Instantiates the collaborators, caches and export cycle.
    """
    settings = settings or config
    logger.info("Initializing collaborators and export pipeline...")

    monitoring = MonitoringCollector(settings)
    container = ContainerCollector(settings)
    clusters = ClusterClientCache(container, token=settings.GOOGLE_OAUTH_TOKEN)

    node_db = DatabaseManager("sqlite", db_path=settings.NODE_CACHE_DB_PATH)
    node_store = SQLiteNodeCapacityStore(node_db, ttl_seconds=settings.node_cache_ttl_seconds)

    usage_db = DatabaseManager(
        settings.DB_TYPE,
        db_path=settings.DB_PATH,
        dsn=settings.DB_CONNECTION_STRING,
        schema=settings.DB_SCHEMA,
    )
    repository = get_usage_repository(usage_db, settings)

    cycle = ExportCycle(monitoring, clusters, node_store, repository, settings=settings)
    return Pipeline(
        monitoring=monitoring,
        container=container,
        clusters=clusters,
        node_db=node_db,
        node_store=node_store,
        usage_db=usage_db,
        repository=repository,
        cycle=cycle,
    )
