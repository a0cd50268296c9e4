# src/kubeusage/collectors/base_collector.py
"""
Base class for the HTTP collaborators of the export pipeline.
"""

from typing import Optional

import httpx

from ..core.config import Config, config
from ..utils.http_client import get_async_http_client


class BaseCollector:
    """
    Holds one lazily created httpx.AsyncClient, reused across cycles.
    """

    def __init__(self, settings: Optional[Config] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or config
        self._client = client

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = get_async_http_client(self.settings)
        return self._client

    async def close(self):
        """Close the HTTP client if it exists."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
