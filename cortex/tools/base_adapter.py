from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

import httpx

from cortex.config import settings
from cortex.models.items import Channel, CollectedItem
from cortex.services.retry import RetryPolicy, default_policy, fetch

class SourceAdapter(ABC):
    """
    One external source feeding one channel.

    fetch_items either returns items or raises; the channel orchestrator turns a
    raise into a CollectorError. An HTTP client can be injected, otherwise each
    call opens its own.
    """
    name: str = "source"
    channel: Channel

    def __init__(self, client: httpx.AsyncClient | None = None, policy: RetryPolicy | None = None):
        self._client = client
        self.policy = policy or default_policy()

    @abstractmethod
    async def fetch_items(self) -> List[CollectedItem]:
        pass

    @asynccontextmanager
    async def http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            headers={"User-Agent": settings.USER_AGENT},
            follow_redirects=True,
        ) as client:
            yield client

    async def get(self, client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
        return await fetch(client, url, source=self.name, policy=self.policy, **kwargs)
