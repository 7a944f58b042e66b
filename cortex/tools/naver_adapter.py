from datetime import timedelta
from typing import List
from urllib.parse import quote

from bs4 import BeautifulSoup

from cortex.config import settings
from cortex.tools.base_adapter import SourceAdapter
from cortex.models.items import Channel, CollectedItem, utcnow
from cortex.models.errors import ValidationError
from cortex.services.logger import logger

BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

def search_url(keyword: str, day: str) -> str:
    return f"https://search.naver.com/search.naver?query={quote(keyword)}&date={day}"

class NaverRealtimeAdapter(SourceAdapter):
    """Rising search keywords scraped from the Naver front page. Markup changes often."""
    URL = "https://www.naver.com"
    name = "naver_realtime"
    channel = Channel.CULTURE
    LIMIT = 5

    async def fetch_items(self) -> List[CollectedItem]:
        async with self.http_client() as client:
            resp = await self.get(client, self.URL, headers={"User-Agent": BROWSER_UA})
        return self.parse(resp.text)

    def parse(self, html: str) -> List[CollectedItem]:
        soup = BeautifulSoup(html, "html.parser")
        now = utcnow()
        day = now.date().isoformat()
        items = []
        for link in soup.select("a.ah_a, .ah_roll_area a, .realtime_keyword a")[:self.LIMIT]:
            keyword_el = link.select_one(".ah_k, .txt")
            keyword = (keyword_el or link).get_text(strip=True)
            if not keyword:
                continue
            items.append(CollectedItem(
                channel=self.channel,
                source=self.name,
                source_url=search_url(keyword, day),
                title=keyword,
                published_at=now,
                tags=["realtime_search"],
            ))
        return items

class NaverDatalabAdapter(SourceAdapter):
    """Search trend groups from the DataLab API. Skipped when credentials are absent."""
    URL = "https://openapi.naver.com/v1/datalab/search"
    name = "naver_datalab"
    channel = Channel.CULTURE
    LIMIT = 10
    KEYWORDS = ["AI", "드라마", "영화", "음악", "스포츠"]

    async def fetch_items(self) -> List[CollectedItem]:
        if not (settings.NAVER_CLIENT_ID and settings.NAVER_CLIENT_SECRET):
            logger.warning("NAVER_CLIENT_ID/NAVER_CLIENT_SECRET not set, skipping DataLab")
            return []

        now = utcnow()
        body = {
            "startDate": (now - timedelta(days=7)).date().isoformat(),
            "endDate": now.date().isoformat(),
            "timeUnit": "date",
            "keywordGroups": [{"groupName": "트렌드", "keywords": self.KEYWORDS}],
        }
        async with self.http_client() as client:
            resp = await self.get(
                client, self.URL, method="POST", json=body,
                headers={
                    "X-Naver-Client-Id": settings.NAVER_CLIENT_ID,
                    "X-Naver-Client-Secret": settings.NAVER_CLIENT_SECRET,
                },
            )
        return self.parse(resp.json())

    def parse(self, data: dict) -> List[CollectedItem]:
        results = data.get("results")
        if not isinstance(results, list):
            raise ValidationError(f"{self.name}: response has no results list")
        now = utcnow()
        day = now.date().isoformat()
        return [
            CollectedItem(
                channel=self.channel,
                source=self.name,
                source_url=search_url(r["title"], day),
                title=r["title"],
                published_at=now,
                tags=["datalab", "search_trend"],
            )
            for r in results[:self.LIMIT]
            if isinstance(r, dict) and r.get("title")
        ]
