"""Tests for recording reader reactions."""

from datetime import datetime, timezone

import pytest

from cortex.models.errors import ValidationError
from cortex.models.items import Channel, ContentRecord, ReadingStatus, SavedItem
from cortex.tools.feedback import FeedbackService

from fakes import InMemoryStore

NOW = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


def seeded_store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_record(ContentRecord(id="c1", channel=Channel.TECH, source="hackernews",
                                   source_url="https://example.com/c1", title="LLM serving tricks",
                                   tags=["tech"], ai_tags=["AI", "Infra"], score_initial=0.7))
    return store


@pytest.mark.asyncio
async def test_like_updates_every_tag_topic() -> None:
    store = seeded_store()
    updated = await FeedbackService(store).record("c1", "liked", NOW)

    assert set(updated) == {"ai", "infra", "tech"}
    assert store.interests["ai"].score == pytest.approx(0.65)
    assert [e.kind for e in store.feedback] == ["liked"]


@pytest.mark.asyncio
async def test_save_adds_to_reading_loop_and_open_starts_reading() -> None:
    store = seeded_store()
    service = FeedbackService(store)

    await service.record("c1", "saved", NOW)
    assert store.saved["c1"].status == ReadingStatus.SAVED

    await service.record("c1", "web_open", NOW)
    assert store.saved["c1"].status == ReadingStatus.READING


@pytest.mark.asyncio
async def test_open_does_not_reopen_completed_item() -> None:
    store = seeded_store()
    store.saved["c1"] = SavedItem(content_id="c1", status=ReadingStatus.COMPLETED, saved_at=NOW)
    await FeedbackService(store).record("c1", "link_click", NOW)
    assert store.saved["c1"].status == ReadingStatus.COMPLETED


@pytest.mark.asyncio
async def test_unknown_content_or_kind_is_rejected() -> None:
    service = FeedbackService(seeded_store())
    with pytest.raises(ValidationError):
        await service.record("missing", "liked", NOW)
    with pytest.raises(ValidationError):
        await service.record("c1", "shared", NOW)
