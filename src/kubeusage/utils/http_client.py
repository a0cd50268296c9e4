import logging
from typing import Optional

import httpx

from ..core.config import Config, config

logger = logging.getLogger(__name__)


def get_async_http_client(
    settings: Optional[Config] = None,
    connect_timeout: float = None,
    read_timeout: float = None,
) -> httpx.AsyncClient:
    """
    Returns a configured httpx.AsyncClient with:
    - Default timeouts (connect and read).
    - Standard User-Agent header.
    - A bearer token when GOOGLE_OAUTH_TOKEN is configured.
    """
    settings = settings or config
    c_timeout = connect_timeout if connect_timeout is not None else settings.DEFAULT_TIMEOUT_CONNECT
    r_timeout = read_timeout if read_timeout is not None else settings.DEFAULT_TIMEOUT_READ

    timeout = httpx.Timeout(r_timeout, connect=c_timeout)

    headers = {"User-Agent": settings.USER_AGENT}
    if settings.GOOGLE_OAUTH_TOKEN:
        headers["Authorization"] = f"Bearer {settings.GOOGLE_OAUTH_TOKEN}"

    return httpx.AsyncClient(
        timeout=timeout,
        headers=headers,
        verify=settings.VERIFY_CERTS,
        follow_redirects=True,
    )
