# src/kubeusage/core/db.py

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiosqlite
import psycopg2
import psycopg2.pool

from .exceptions import ConnectionError

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Manages the connection to a relational database (SQLite or PostgreSQL).

    SQLite uses one persistent aiosqlite connection. PostgreSQL uses a
    psycopg2 connection pool; repositories run blocking statements through
    asyncio.to_thread.
    """

    def __init__(
        self,
        db_type: str = "sqlite",
        db_path: Optional[str] = None,
        dsn: Optional[str] = None,
        schema: Optional[str] = None,
    ):
        self.db_type = db_type
        self.db_path = db_path
        self.dsn = dsn
        self.schema = schema
        self.connection: Optional[aiosqlite.Connection] = None
        self.pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None

    async def connect(self):
        """
        Establishes a connection to the configured database.
        """
        try:
            if self.db_type == "sqlite":
                self.connection = await aiosqlite.connect(self.db_path)
                logger.info("Successfully connected to SQLite database at %s.", self.db_path)
            elif self.db_type == "postgres":
                options = f"-c search_path={self.schema}" if self.schema else None
                self.pool = await asyncio.to_thread(
                    psycopg2.pool.ThreadedConnectionPool,
                    minconn=1,
                    maxconn=10,
                    dsn=self.dsn,
                    options=options,
                )
                logger.info("Successfully initialized PostgreSQL connection pool.")
            else:
                raise ValueError(f"Unsupported database type: {self.db_type}")
        except (aiosqlite.Error, psycopg2.Error, OSError) as e:
            logger.error(f"Could not connect to the database: {e}")
            raise ConnectionError(f"Could not connect to the {self.db_type} database: {e}") from e

    @asynccontextmanager
    async def connection_scope(self):
        """
        Yields a database connection.
        For PostgreSQL, gets a connection from the pool and puts it back.
        For SQLite, yields the single persistent connection.
        """
        if self.db_type == "postgres":
            if self.pool is None or self.pool.closed:
                await self.connect()
            conn = await asyncio.to_thread(self.pool.getconn)
            try:
                yield conn
            finally:
                self.pool.putconn(conn)
        else:
            if self.connection is None:
                await self.connect()
            yield self.connection

    async def close(self):
        if self.pool:
            self.pool.closeall()
            self.pool = None
            logger.info("PostgreSQL connection pool closed.")
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info("Database connection closed.")
