import httpx
from typing import List
from datetime import datetime, timezone
from cortex.tools.base_adapter import SourceAdapter
from cortex.tools.batching import gather_in_batches
from cortex.models.items import Channel, CollectedItem
from cortex.models.errors import CortexError
from cortex.services.logger import logger

class HackerNewsAdapter(SourceAdapter):
    BASE_URL = "https://hacker-news.firebaseio.com/v0"
    name = "hackernews"
    channel = Channel.TECH

    TOP_IDS = 50
    BATCH_SIZE = 10
    LIMIT = 10

    async def fetch_items(self) -> List[CollectedItem]:
        async with self.http_client() as client:
            resp = await self.get(client, f"{self.BASE_URL}/topstories.json")
            ids = resp.json()[:self.TOP_IDS]

            # Item lookups in chunks of 10, failures dropped
            stories = await gather_in_batches(ids, self.BATCH_SIZE, lambda i: self._fetch_item(client, i))

        stories = [s for s in stories if s]
        stories.sort(key=lambda s: s.get("score", 0), reverse=True)
        items = [self._to_item(s) for s in stories[:self.LIMIT]]
        logger.info(f"Found {len(items)} HN stories ({len(stories)}/{len(ids)} lookups ok)")
        return items

    async def _fetch_item(self, client: httpx.AsyncClient, id: int) -> dict | None:
        try:
            resp = await self.get(client, f"{self.BASE_URL}/item/{id}.json")
            data = resp.json()
        except (CortexError, ValueError) as e:
            logger.debug(f"Dropping HN item {id}: {e}")
            return None
        if not data or data.get("type") != "story" or not data.get("title"):
            return None
        return data

    def _to_item(self, data: dict) -> CollectedItem:
        id = data["id"]
        return CollectedItem(
            channel=self.channel,
            source=self.name,
            source_url=data.get("url") or f"https://news.ycombinator.com/item?id={id}",
            title=data["title"],
            full_text=data.get("text") or None,  # Ask HN posts carry text
            published_at=datetime.fromtimestamp(data.get("time", 0), tz=timezone.utc),
            tags=[],
        )
