from datetime import datetime
from typing import List

from cortex.config import settings
from cortex.tools.base_adapter import SourceAdapter
from cortex.models.items import Channel, CollectedItem
from cortex.models.errors import ValidationError
from cortex.services.logger import logger

class YouTubeTrendingAdapter(SourceAdapter):
    API_URL = "https://www.googleapis.com/youtube/v3/videos"
    name = "youtube_trending"
    channel = Channel.CULTURE
    FETCH = 10
    LIMIT = 2
    DESCRIPTION_MAX = 500

    async def fetch_items(self) -> List[CollectedItem]:
        if not settings.YOUTUBE_DATA_API_KEY:
            logger.warning("YOUTUBE_DATA_API_KEY not set, skipping YouTube trending")
            return []

        params = {
            "part": "snippet,statistics",
            "chart": "mostPopular",
            "regionCode": "KR",
            "maxResults": str(self.FETCH),
            "key": settings.YOUTUBE_DATA_API_KEY,
        }
        async with self.http_client() as client:
            resp = await self.get(client, self.API_URL, params=params)
        return self.parse(resp.json())[:self.LIMIT]

    def parse(self, data: dict) -> List[CollectedItem]:
        videos = data.get("items")
        if not isinstance(videos, list):
            raise ValidationError(f"{self.name}: response has no items list")

        items = []
        for video in videos:
            snippet = video.get("snippet") or {}
            title = snippet.get("title")
            if not video.get("id") or not title:
                continue
            description = (snippet.get("description") or "")[:self.DESCRIPTION_MAX]
            published = snippet.get("publishedAt")
            items.append(CollectedItem(
                channel=self.channel,
                source=self.name,
                source_url=f"https://www.youtube.com/watch?v={video['id']}",
                title=title,
                full_text=description or None,
                published_at=datetime.fromisoformat(published.replace("Z", "+00:00")) if published else None,
                tags=["youtube"],
            ))
        return items
