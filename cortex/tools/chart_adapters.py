"""Scrapers for entertainment rankings: Melon song chart and Netflix Korea top 10."""
from typing import List

from bs4 import BeautifulSoup

from cortex.tools.base_adapter import SourceAdapter
from cortex.models.items import Channel, CollectedItem, utcnow

BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

class MelonChartAdapter(SourceAdapter):
    URL = "https://www.melon.com/chart/index.htm"
    name = "melon"
    channel = Channel.CULTURE
    LIMIT = 5

    async def fetch_items(self) -> List[CollectedItem]:
        async with self.http_client() as client:
            resp = await self.get(client, self.URL, headers={
                "User-Agent": BROWSER_UA,
                "Referer": "https://www.melon.com/",
            })
        return self.parse(resp.text)

    def parse(self, html: str) -> List[CollectedItem]:
        soup = BeautifulSoup(html, "html.parser")
        now = utcnow()
        day = now.date().isoformat()
        items = []
        for rank, row in enumerate(soup.select("tr.lst50, tr.lst100")[:self.LIMIT], start=1):
            song = row.select_one(".rank01 a")
            artist = row.select_one(".rank02 a")
            if not song or not artist:
                continue
            song_id = row.get("data-song-no") or str(rank)
            song_name = song.get_text(strip=True)
            artist_name = artist.get_text(strip=True)
            items.append(CollectedItem(
                channel=self.channel,
                source=self.name,
                source_url=f"https://www.melon.com/song/detail.htm?songId={song_id}&date={day}",
                title=f"{rank}. {artist_name} - {song_name}",
                published_at=now,
                tags=["music", "melon"],
            ))
        return items

class NetflixTopAdapter(SourceAdapter):
    URL = "https://www.netflix.com/tudum/top10"
    name = "netflix_kr"
    channel = Channel.CULTURE
    SELECTORS = ".top-10-rank-number-one .title, [data-rank='1'] .show-title, h3.title"

    async def fetch_items(self) -> List[CollectedItem]:
        async with self.http_client() as client:
            resp = await self.get(client, self.URL, headers={
                "User-Agent": BROWSER_UA,
                "Accept-Language": "ko-KR,ko;q=0.9",
            })
        return self.parse(resp.text)

    def parse(self, html: str) -> List[CollectedItem]:
        soup = BeautifulSoup(html, "html.parser")
        title_el = soup.select_one(self.SELECTORS)
        title = title_el.get_text(strip=True) if title_el else ""
        if not title:
            return []

        anchor = title_el.find_parent("a")
        href = anchor.get("href") if anchor else None
        if href:
            url = href if href.startswith("http") else f"https://www.netflix.com{href}"
        else:
            url = f"{self.URL}?date={utcnow().date().isoformat()}"

        return [CollectedItem(
            channel=self.channel,
            source=self.name,
            source_url=url,
            title=f"[넷플릭스 1위] {title}",
            published_at=utcnow(),
            tags=["netflix", "streaming"],
        )]
