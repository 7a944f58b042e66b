from typing import List
from bs4 import BeautifulSoup
from cortex.tools.base_adapter import SourceAdapter
from cortex.models.items import Channel, CollectedItem, utcnow
from cortex.services.logger import logger

class GitHubTrendingAdapter(SourceAdapter):
    URL = "https://github.com/trending?since=daily"
    name = "github_trending"
    channel = Channel.TECH
    LIMIT = 20

    async def fetch_items(self) -> List[CollectedItem]:
        async with self.http_client() as client:
            resp = await self.get(client, self.URL)
        items = self.parse(resp.text)
        logger.info(f"Found {len(items)} GitHub trending repos")
        return items

    def parse(self, html: str) -> List[CollectedItem]:
        soup = BeautifulSoup(html, "html.parser")
        now = utcnow()
        items = []
        for row in soup.select("article.Box-row")[:self.LIMIT]:
            link = row.select_one("h2 a")
            repo_path = (link.get("href") or "").strip() if link else ""
            if not repo_path:
                continue
            desc_el = row.find("p")
            description = desc_el.get_text(strip=True) if desc_el else ""
            lang_el = row.select_one('[itemprop="programmingLanguage"]')
            language = lang_el.get_text(strip=True) if lang_el else ""

            items.append(CollectedItem(
                channel=self.channel,
                source=self.name,
                source_url=f"https://github.com{repo_path}",
                title=f"{repo_path.lstrip('/')}: {description or '(설명 없음)'}",
                full_text=" | ".join(p for p in (description, language) if p) or None,
                published_at=now,
                tags=[language] if language else [],
            ))
        return items
