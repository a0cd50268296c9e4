import asyncio
import logging
from typing import List

import psycopg2
import psycopg2.extras

from ..core.exceptions import QueryError
from ..models.usage import UsageRecord, usage_record_columns
from .base_repository import UsageRepository, validate_table_name

logger = logging.getLogger(__name__)

POSTGRES_TYPES = {
    "TEXT": "TEXT",
    "REAL": "DOUBLE PRECISION",
    "INTEGER": "BIGINT",
    "BOOLEAN": "BOOLEAN",
    "TIMESTAMP": "TIMESTAMP WITH TIME ZONE",
    "JSON": "JSONB",
}


class PostgresUsageRepository(UsageRepository):
    def __init__(self, db_manager, table_name: str = "consumption"):
        self.db_manager = db_manager
        self.table_name = validate_table_name(table_name)

    def _create_table(self, conn):
        columns = ",\n".join(f"{name} {POSTGRES_TYPES[kind]}" for name, kind in usage_record_columns())
        with conn.cursor() as cursor:
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    id BIGSERIAL PRIMARY KEY,
                    {columns}
                );
                CREATE INDEX IF NOT EXISTS idx_{self.table_name}_start_time ON {self.table_name}(start_time);
            """)
        conn.commit()

    def _insert(self, conn, rows):
        names = [name for name, _ in usage_record_columns()]
        query = f"INSERT INTO {self.table_name} ({', '.join(names)}) VALUES %s"
        with conn.cursor() as cursor:
            psycopg2.extras.execute_values(cursor, query, rows)
        conn.commit()

    async def ensure_table(self) -> None:
        try:
            async with self.db_manager.connection_scope() as conn:
                await asyncio.to_thread(self._create_table, conn)
        except psycopg2.Error as e:
            logger.error(f"Failed to create table {self.table_name}: {e}")
            raise QueryError(f"Failed to create table {self.table_name}: {e}") from e
        logger.info("PostgreSQL usage table '%s' is ready.", self.table_name)

    async def write_usage(self, records: List[UsageRecord]) -> int:
        if not records:
            return 0

        names = [name for name, _ in usage_record_columns()]
        rows = [tuple(record.to_row()[n] for n in names) for record in records]

        try:
            async with self.db_manager.connection_scope() as conn:
                try:
                    await asyncio.to_thread(self._insert, conn, rows)
                except psycopg2.Error:
                    conn.rollback()
                    raise
        except psycopg2.Error as e:
            logger.error(f"Error writing usage records to Postgres: {e}")
            raise QueryError(f"Error writing usage records: {e}") from e

        logger.info(f"Saved {len(rows)} usage records to Postgres.")
        return len(rows)
