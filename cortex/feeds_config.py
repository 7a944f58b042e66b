from typing import List, NamedTuple

class FeedConfig(NamedTuple):
    url: str
    source: str
    channel: str
    limit: int = 20
    tags: tuple = ()

# Korean general news, one category tag per source
WORLD_RSS_FEEDS: List[FeedConfig] = [
    FeedConfig("https://news.naver.com/main/rss/politics.nhn", "naver_politics", "world", 20, ("politics",)),
    FeedConfig("https://news.naver.com/main/rss/economy.nhn", "naver_economy", "world", 20, ("economy",)),
    FeedConfig("https://news.naver.com/main/rss/society.nhn", "naver_society", "world", 20, ("society",)),
    FeedConfig("https://news.naver.com/main/rss/it.nhn", "naver_it", "world", 20, ("it_science",)),
    FeedConfig("https://news.daum.net/rss", "daum_news", "world", 50, ("general",)),
    FeedConfig("https://www.yonhapnewstv.co.kr/browse/feed/", "yonhap", "world", 100, ("general",)),
    FeedConfig("https://feeds.bbci.co.uk/korean/rss.xml", "bbc_korea", "world", 30, ("international",)),
]

CANADA_RSS_FEEDS: List[FeedConfig] = [
    FeedConfig("https://www.thestar.com/feeds", "toronto_star", "canada", 30),
    FeedConfig("https://www.cbc.ca/cmlink/rss-canada", "cbc_canada", "canada", 30),
]

# Extra tech feeds the user subscribed to. Empty by default.
TECH_RSS_FEEDS: List[FeedConfig] = []

TORONTO_KEYWORDS = ["toronto", "ontario", "ttc", "gta", "york region"]
