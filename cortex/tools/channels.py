"""Which sources feed which channel."""
from typing import Dict, List

import httpx

from cortex.feeds_config import CANADA_RSS_FEEDS, TECH_RSS_FEEDS, TORONTO_KEYWORDS, WORLD_RSS_FEEDS
from cortex.models.items import Channel, CollectedItem
from cortex.services.retry import RetryPolicy
from cortex.tools.chart_adapters import MelonChartAdapter, NetflixTopAdapter
from cortex.tools.dedup import select_top_issues
from cortex.tools.github_adapter import GitHubTrendingAdapter
from cortex.tools.hn_adapter import HackerNewsAdapter
from cortex.tools.naver_adapter import NaverDatalabAdapter, NaverRealtimeAdapter
from cortex.tools.orchestrator import ChannelOrchestrator
from cortex.tools.rss_adapter import RSSAdapter
from cortex.tools.weather_adapter import TorontoWeatherAdapter
from cortex.tools.youtube_adapter import YouTubeTrendingAdapter

TORONTO_PER_FEED = 2

def is_toronto_specific(title: str) -> bool:
    lower = title.lower()
    return any(kw in lower for kw in TORONTO_KEYWORDS)

def filter_toronto_news(items: List[CollectedItem], limit: int = TORONTO_PER_FEED) -> List[CollectedItem]:
    """Toronto-specific headlines first (stable), cut to `limit`, tagged toronto or canada."""
    ranked = sorted(items, key=lambda i: is_toronto_specific(i.title), reverse=True)[:limit]
    return [
        i.model_copy(update={"tags": ["toronto"] if is_toronto_specific(i.title) else ["canada"]})
        for i in ranked
    ]

def build_channels(client: httpx.AsyncClient | None = None,
                   policy: RetryPolicy | None = None) -> Dict[Channel, ChannelOrchestrator]:
    kw = {"client": client, "policy": policy}
    return {
        Channel.TECH: ChannelOrchestrator(Channel.TECH, [
            HackerNewsAdapter(**kw),
            GitHubTrendingAdapter(**kw),
            *(RSSAdapter(feed, **kw) for feed in TECH_RSS_FEEDS),
        ]),
        Channel.WORLD: ChannelOrchestrator(
            Channel.WORLD,
            [RSSAdapter(feed, **kw) for feed in WORLD_RSS_FEEDS],
            post_process=select_top_issues,
        ),
        Channel.CULTURE: ChannelOrchestrator(Channel.CULTURE, [
            NaverRealtimeAdapter(**kw),
            NaverDatalabAdapter(**kw),
            NetflixTopAdapter(**kw),
            MelonChartAdapter(**kw),
            YouTubeTrendingAdapter(**kw),
        ]),
        Channel.CANADA: ChannelOrchestrator(Channel.CANADA, [
            *(RSSAdapter(feed, transform=filter_toronto_news, **kw) for feed in CANADA_RSS_FEEDS),
            TorontoWeatherAdapter(**kw),
        ]),
    }
