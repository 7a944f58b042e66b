import feedparser
from typing import Callable, List
from datetime import datetime, timezone
from cortex.tools.base_adapter import SourceAdapter
from cortex.models.items import Channel, CollectedItem
from cortex.models.errors import ParseError
from cortex.feeds_config import FeedConfig
from cortex.services.logger import logger

class RSSAdapter(SourceAdapter):
    """
    One RSS/Atom feed. Entries without both a link and a title are skipped.
    `transform` lets a channel reshape the parsed list (filtering, tagging).
    """
    def __init__(self, feed: FeedConfig, transform: Callable[[List[CollectedItem]], List[CollectedItem]] | None = None,
                 **kwargs):
        super().__init__(**kwargs)
        self.feed = feed
        self.name = feed.source
        self.channel = Channel(feed.channel)
        self.transform = transform

    async def fetch_items(self) -> List[CollectedItem]:
        async with self.http_client() as client:
            resp = await self.get(client, self.feed.url)
        items = self.parse(resp.content)
        if self.transform:
            items = self.transform(items)
        logger.info(f"Found {len(items)} items in {self.name}")
        return items

    def parse(self, content: bytes) -> List[CollectedItem]:
        feed = feedparser.parse(content)
        if feed.bozo and not feed.entries:
            raise ParseError(f"{self.name}: unreadable feed ({feed.get('bozo_exception')})")

        items = []
        for entry in feed.entries[:self.feed.limit]:
            link = entry.get("link")
            title = (entry.get("title") or "").strip()
            if not link or not title:
                continue

            published = entry.get("published_parsed") or entry.get("updated_parsed")
            dt = datetime(*published[:6], tzinfo=timezone.utc) if published else None

            items.append(CollectedItem(
                channel=self.channel,
                source=self.name,
                source_url=link,
                title=title,
                full_text=entry.get("summary") or entry.get("description") or None,
                published_at=dt,
                tags=list(self.feed.tags),
            ))
        return items
