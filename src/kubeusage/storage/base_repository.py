# src/kubeusage/storage/base_repository.py
import re
from abc import ABC, abstractmethod
from typing import List

from ..core.exceptions import ConfigurationError
from ..models.node import NodeCapacityRecord
from ..models.usage import UsageRecord

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class NodeCapacityStore(ABC):
    """
    Abstract base class for the node capacity cache.
    Defines the contract for reading and upserting node capacity records.
    """

    @abstractmethod
    async def get(
        self, project_id: str, cluster_name: str, cluster_location: str, node_name: str, allow_stale: bool = False
    ) -> NodeCapacityRecord:
        """
        Retrieves the cached record for a node.

        Args:
            allow_stale: Return the record even if it is older than the freshness window.

        Raises:
            NodeNotFoundError: If no record exists, or it is stale and allow_stale is False.
            QueryError: If the cache cannot be read.
        """
        pass

    @abstractmethod
    async def upsert(self, record: NodeCapacityRecord) -> None:
        """
        Inserts or replaces the record for a node.

        Raises:
            QueryError: If the write fails.
        """
        pass


class UsageRepository(ABC):
    """
    Abstract base class for the analytics sink receiving usage records.
    """

    @abstractmethod
    async def ensure_table(self) -> None:
        """
        Creates the usage table from the UsageRecord schema if it does not exist.
        """
        pass

    @abstractmethod
    async def write_usage(self, records: List[UsageRecord]) -> int:
        """
        Writes a batch of usage records.

        Returns:
            The number of records written.

        Raises:
            QueryError: If the batch cannot be written.
        """
        pass


def validate_table_name(name: str) -> str:
    """
    Table names are interpolated into DDL, so only plain identifiers are accepted.

    Raises:
        ConfigurationError: If the name is not a plain SQL identifier.
    """
    if not _IDENTIFIER_RE.match(name or ""):
        raise ConfigurationError(f"Invalid table name: '{name}'")
    return name
