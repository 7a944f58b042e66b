"""End-to-end runs of the pipeline against in-memory collaborators."""

import random
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from cortex.models.errors import PersistenceError, SourceFetchError
from cortex.models.items import Channel, CollectedItem, ContentRecord, Digest, LLMResponse, SavedItem
from cortex.services.retry import RetryPolicy
from cortex.tools.base_adapter import SourceAdapter
from cortex.tools.editorial import EditorialSelector
from cortex.tools.fatigue import set_mute
from cortex.tools.orchestrator import ChannelOrchestrator
from cortex.tools.selector import BriefingSelector
from cortex.tools.summarizer import Summarizer
from cortex.workflows.pipeline import Pipeline, channel_pref_key

from fakes import FakeLLM, FakeNotifier, InMemoryStore, echo_summaries

MONDAY = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)
SATURDAY = datetime(2025, 1, 11, 12, 0, tzinfo=timezone.utc)
NO_RETRY = RetryPolicy(attempts=1, timeout=None, backoff=0.0)


class StaticAdapter(SourceAdapter):
    def __init__(self, name: str, channel: Channel, titles: List[str] = (), error: Exception | None = None):
        super().__init__()
        self.name = name
        self.channel = channel
        self.titles = list(titles)
        self.error = error

    async def fetch_items(self) -> List[CollectedItem]:
        if self.error:
            raise self.error
        return [
            CollectedItem(channel=self.channel, source=self.name, title=t,
                          source_url=f"https://{self.name}.example/{n}")
            for n, t in enumerate(self.titles)
        ]


class FlakyStore(InMemoryStore):
    """Fails the summary write for one title."""

    def __init__(self, bad_title: str) -> None:
        super().__init__()
        self.bad_title = bad_title

    async def update_summary(self, content_id, summary, tags, score) -> None:
        if self.content[content_id].title == self.bad_title:
            raise PersistenceError(f"Failed to update summary for {content_id}")
        await super().update_summary(content_id, summary, tags, score)


class FixedDraw(random.Random):
    def random(self) -> float:
        return 0.0


def make_pipeline(store: InMemoryStore, notifier: FakeNotifier | None = None,
                  editorial_response: str = '{"selected": [1]}') -> Pipeline:
    channels = {
        Channel.TECH: ChannelOrchestrator(Channel.TECH, [
            StaticAdapter("hackernews", Channel.TECH, ["Rust 2.0 released", "New GPU benchmark"]),
            StaticAdapter("github_trending", Channel.TECH, error=SourceFetchError("github_trending returned 503")),
        ]),
        Channel.WORLD: ChannelOrchestrator(Channel.WORLD, [
            StaticAdapter("yonhap", Channel.WORLD, ["Budget passes", "Trade talks", "Storm warning"]),
        ]),
    }
    return Pipeline(
        store,
        channels=channels,
        summarizer=Summarizer(llm=FakeLLM(echo_summaries), batch_size=10, policy=NO_RETRY),
        editorial=EditorialSelector(llm=FakeLLM(LLMResponse(text=editorial_response)), policy=NO_RETRY),
        notifier=notifier or FakeNotifier(),
        selector=BriefingSelector(rng=FixedDraw()),
    )


@pytest.mark.asyncio
async def test_collection_reports_counts_errors_and_duplicates() -> None:
    """Partial failure still summarizes everything new and reports what went wrong."""
    store = InMemoryStore()
    store.add_record(ContentRecord(channel=Channel.TECH, source="hackernews", source_url="https://hackernews.example/0",
                                   title="Rust 2.0 released", summary="already done", score_initial=0.7))

    report = await make_pipeline(store).run_collection()

    assert report.collected == {"tech": 2, "world": 3, "culture": 0, "canada": 0}
    assert report.duplicatesSkipped == 1
    assert report.cached == 1
    assert report.summarized == 4
    assert report.fallbacks == 0
    assert report.tokensUsed == 400
    assert report.errors == ["github_trending: github_trending returned 503"]

    world_scores = sorted(r.score_initial for r in store.content.values() if r.channel == Channel.WORLD)
    assert world_scores == [0.8, 0.8, 0.9]
    assert all(r.summary for r in store.content.values())


@pytest.mark.asyncio
async def test_summarized_items_leave_the_unsummarized_query() -> None:
    store = InMemoryStore()
    pipeline = make_pipeline(store)
    await pipeline.run_collection()

    since = datetime.now(timezone.utc) - timedelta(hours=24)
    assert await store.get_unsummarized(since) == []


@pytest.mark.asyncio
async def test_one_failed_write_does_not_block_others() -> None:
    store = FlakyStore("Trade talks")
    report = await make_pipeline(store).run_collection()

    assert report.summarized == 4
    assert len(report.errors) == 2
    assert any("Failed to update summary" in e for e in report.errors)
    failed = [r for r in store.content.values() if r.title == "Trade talks"]
    assert failed[0].summary is None
    assert all(r.summary for r in store.content.values() if r.title != "Trade talks")


@pytest.mark.asyncio
async def test_disabled_channel_is_not_collected() -> None:
    store = InMemoryStore()
    store.prefs[channel_pref_key(Channel.WORLD)] = "false"
    report = await make_pipeline(store).run_collection()

    assert report.collected["world"] == 0
    assert all(r.channel == Channel.TECH for r in store.content.values())


@pytest.mark.asyncio
async def test_unreadable_editorial_response_picks_first_two() -> None:
    store = InMemoryStore()
    await make_pipeline(store, editorial_response="no idea").run_collection()

    world_scores = [r.score_initial for r in store.content.values() if r.channel == Channel.WORLD]
    assert world_scores.count(0.9) == 2


def seed_summarized(store: InMemoryStore, now: datetime) -> None:
    for channel, count in ((Channel.TECH, 4), (Channel.WORLD, 2)):
        for i in range(count):
            store.add_record(ContentRecord(
                id=f"{channel.value}-{i}", channel=channel, source="src", title=f"{channel.value} {i}",
                source_url=f"https://example.com/{channel.value}/{i}", summary=f"summary {i}",
                ai_tags=["ai"], score_initial=0.9 - i * 0.1, collected_at=now - timedelta(hours=1),
            ))


@pytest.mark.asyncio
async def test_routine_briefing_selects_sends_and_saves_digest() -> None:
    """Weekday run: quota, volume reduction for a silent reader, one serendipity pick."""
    store = InMemoryStore()
    seed_summarized(store, MONDAY)
    notifier = FakeNotifier()

    outcome = await make_pipeline(store, notifier).run_briefing(now=MONDAY)

    assert outcome.sent and outcome.mode == "routine"
    assert outcome.reduction == 2
    # 3 tech + 2 world, minus 2 for silence, plus the serendipity pick
    assert outcome.item_count == 4
    assert outcome.delivery_id == "101"
    assert len(notifier.sent) == 1
    assert "오늘의 브리핑" in notifier.sent[0]["text"]
    assert store.digests[0].item_ids[:3] == ["tech-0", "tech-1", "world-0"]
    assert store.digests[0].digest_date == "2025-01-06"


@pytest.mark.asyncio
async def test_weekend_briefing_is_curated_without_reduction() -> None:
    store = InMemoryStore()
    seed_summarized(store, SATURDAY)
    outcome = await make_pipeline(store).run_briefing(now=SATURDAY)

    assert outcome.mode == "curated"
    assert outcome.reduction == 0
    assert outcome.item_count == 4  # 2 tech + 1 world + serendipity


@pytest.mark.asyncio
async def test_recurring_item_is_marked_as_following() -> None:
    store = InMemoryStore()
    seed_summarized(store, MONDAY)
    store.digests = [
        Digest(id=1, digest_date="2025-01-04", mode="curated", item_ids=["tech-0"]),
        Digest(id=2, digest_date="2025-01-05", mode="curated", item_ids=["tech-0", "world-1"]),
    ]
    notifier = FakeNotifier()
    await make_pipeline(store, notifier).run_briefing(now=MONDAY)

    assert notifier.sent[0]["text"].count("후속") == 1


@pytest.mark.asyncio
async def test_muted_briefing_is_skipped() -> None:
    store = InMemoryStore()
    seed_summarized(store, MONDAY)
    await set_mute(store, 2, MONDAY - timedelta(hours=1))
    notifier = FakeNotifier()

    outcome = await make_pipeline(store, notifier).run_briefing(now=MONDAY)

    assert outcome.skipped_reason == "muted"
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_no_candidates_is_skipped() -> None:
    outcome = await make_pipeline(InMemoryStore()).run_briefing(now=MONDAY)
    assert not outcome.sent
    assert outcome.skipped_reason == "no_candidates"


@pytest.mark.asyncio
async def test_delivery_failure_is_reported_not_raised() -> None:
    class DownNotifier(FakeNotifier):
        async def send(self, text, parse_mode="HTML", keyboard=None) -> str:
            raise SourceFetchError("Telegram unreachable")

    store = InMemoryStore()
    seed_summarized(store, MONDAY)
    outcome = await make_pipeline(store, DownNotifier()).run_briefing(now=MONDAY)

    assert outcome.skipped_reason == "delivery_failed"
    assert outcome.errors == ["Telegram unreachable"]
    assert store.digests == []


@pytest.mark.asyncio
async def test_reading_loop_archives_and_reminds() -> None:
    store = InMemoryStore()
    store.add_record(ContentRecord(id="c1", channel=Channel.TECH, source="src",
                                   source_url="https://example.com/c1", title="Deep dive on CRDTs"))
    store.saved["c1"] = SavedItem(content_id="c1", saved_at=MONDAY - timedelta(days=25, hours=12))
    store.saved["c2"] = SavedItem(content_id="c2", saved_at=MONDAY - timedelta(days=31))
    notifier = FakeNotifier()

    result = await make_pipeline(store, notifier).run_reading_loop(now=MONDAY)

    assert result == {"archived": 1, "reminded": 1, "errors": []}
    assert "Deep dive on CRDTs" in notifier.sent[0]["text"]
