# src/kubeusage/storage/sqlite_node_repository.py

"""
SQLite-backed cache of node capacity records.
"""

import asyncio
import logging
import sqlite3

import aiosqlite

from ..core.exceptions import NodeNotFoundError, QueryError
from ..models.node import NodeCapacityRecord, node_cache_key
from ..utils.date_utils import ensure_utc
from .base_repository import NodeCapacityStore

logger = logging.getLogger(__name__)

_COLUMNS = (
    "project_id, cluster_name, cluster_location, node_name, machine_type, "
    "preemptible, region, cpu_capacity, mem_capacity, last_updated"
)


class SQLiteNodeCapacityStore(NodeCapacityStore):
    """
    SQLite implementation of NodeCapacityStore.

    Writes go through a single global lock. Reads are not locked: SQLite
    makes a committed row visible atomically.
    """

    def __init__(self, db_manager, ttl_seconds: float = 300):
        self.db_manager = db_manager
        self.ttl_seconds = ttl_seconds
        self._write_lock = asyncio.Lock()

    async def setup(self):
        """
        Creates the nodes table if it doesn't exist.

        Raises:
            QueryError: If the table cannot be created.
        """
        try:
            async with self.db_manager.connection_scope() as conn:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS nodes (
                        id TEXT PRIMARY KEY,
                        project_id TEXT NOT NULL,
                        cluster_name TEXT NOT NULL,
                        cluster_location TEXT NOT NULL,
                        node_name TEXT NOT NULL,
                        machine_type TEXT,
                        preemptible BOOLEAN,
                        region TEXT,
                        cpu_capacity INTEGER,
                        mem_capacity INTEGER,
                        last_updated TEXT NOT NULL
                    );
                """)
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to create node cache table: {e}")
            raise QueryError(f"Failed to create node cache table: {e}") from e
        logger.info("Node cache schema is up to date.")

    async def get(
        self, project_id: str, cluster_name: str, cluster_location: str, node_name: str, allow_stale: bool = False
    ) -> NodeCapacityRecord:
        node_id = node_cache_key(project_id, cluster_name, cluster_location, node_name)
        try:
            async with self.db_manager.connection_scope() as conn:
                conn.row_factory = aiosqlite.Row
                async with conn.execute(f"SELECT {_COLUMNS} FROM nodes WHERE id = ?", (node_id,)) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Could not read node cache for {node_id}: {e}")
            raise QueryError(f"Could not read node cache for {node_id}: {e}") from e

        if row is None:
            raise NodeNotFoundError(f"row not found, id={node_id}")

        record = NodeCapacityRecord(
            project_id=row["project_id"],
            cluster_name=row["cluster_name"],
            cluster_location=row["cluster_location"],
            node_name=row["node_name"],
            machine_type=row["machine_type"] or "",
            preemptible=bool(row["preemptible"]),
            region=row["region"] or "",
            cpu_capacity=row["cpu_capacity"] or 0,
            mem_capacity=row["mem_capacity"] or 0,
            last_updated=ensure_utc(row["last_updated"]),
        )
        if not allow_stale and record.is_stale(self.ttl_seconds):
            raise NodeNotFoundError(f"row is stale, id={node_id}, last_updated={record.last_updated.isoformat()}")
        return record

    async def upsert(self, record: NodeCapacityRecord) -> None:
        async with self._write_lock:
            try:
                async with self.db_manager.connection_scope() as conn:
                    await conn.execute(
                        f"""
                        INSERT INTO nodes (id, {_COLUMNS})
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            machine_type = excluded.machine_type,
                            preemptible = excluded.preemptible,
                            region = excluded.region,
                            cpu_capacity = excluded.cpu_capacity,
                            mem_capacity = excluded.mem_capacity,
                            last_updated = excluded.last_updated;
                        """,
                        (
                            record.key,
                            record.project_id,
                            record.cluster_name,
                            record.cluster_location,
                            record.node_name,
                            record.machine_type,
                            record.preemptible,
                            record.region,
                            record.cpu_capacity,
                            record.mem_capacity,
                            ensure_utc(record.last_updated).isoformat(),
                        ),
                    )
                    await conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Could not upsert node cache for {record.key}: {e}")
                raise QueryError(f"Could not upsert node cache for {record.key}: {e}") from e

    async def close(self):
        """Closes the underlying cache database."""
        await self.db_manager.close()
