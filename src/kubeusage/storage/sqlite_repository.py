# src/kubeusage/storage/sqlite_repository.py

import logging
import sqlite3
from datetime import datetime
from typing import List

from ..core.exceptions import QueryError
from ..models.usage import UsageRecord, usage_record_columns
from ..utils.date_utils import to_iso_z
from .base_repository import UsageRepository, validate_table_name

logger = logging.getLogger(__name__)

SQLITE_TYPES = {
    "TEXT": "TEXT",
    "REAL": "REAL",
    "INTEGER": "INTEGER",
    "BOOLEAN": "BOOLEAN",
    "TIMESTAMP": "TEXT",
    "JSON": "TEXT",
}


class SQLiteUsageRepository(UsageRepository):
    """
    Writes usage records to a SQLite table.
    """

    def __init__(self, db_manager, table_name: str = "consumption"):
        self.db_manager = db_manager
        self.table_name = validate_table_name(table_name)

    async def ensure_table(self) -> None:
        columns = ",\n".join(f"{name} {SQLITE_TYPES[kind]}" for name, kind in usage_record_columns())
        try:
            async with self.db_manager.connection_scope() as conn:
                await conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.table_name} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        {columns}
                    );
                """)
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to create table {self.table_name}: {e}")
            raise QueryError(f"Failed to create table {self.table_name}: {e}") from e
        logger.info("SQLite usage table '%s' is ready.", self.table_name)

    async def write_usage(self, records: List[UsageRecord]) -> int:
        if not records:
            return 0

        names = [name for name, _ in usage_record_columns()]
        query = (
            f"INSERT INTO {self.table_name} ({', '.join(names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        rows = []
        for record in records:
            row = record.to_row()
            rows.append(tuple(to_iso_z(v) if isinstance(v, datetime) else v for v in (row[n] for n in names)))

        try:
            async with self.db_manager.connection_scope() as conn:
                await conn.executemany(query, rows)
                await conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Error writing usage records to {self.table_name}: {e}")
            raise QueryError(f"Error writing usage records: {e}") from e

        return len(rows)
