"""Tests for the saved-item reading loop."""

from datetime import datetime, timedelta, timezone

import pytest

from cortex.models.errors import ValidationError
from cortex.models.items import ReadingStatus, SavedItem
from cortex.tools.reading_loop import ReadingLoop, transition

from fakes import InMemoryStore

NOW = datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc)


def saved(content_id: str, days_ago: float, status: ReadingStatus = ReadingStatus.SAVED) -> SavedItem:
    return SavedItem(content_id=content_id, status=status, saved_at=NOW - timedelta(days=days_ago))


def test_transitions_only_move_forward() -> None:
    item = saved("a", 1)
    reading = transition(item, ReadingStatus.READING, NOW)
    assert reading.reading_started_at == NOW

    done = transition(reading, ReadingStatus.COMPLETED, NOW)
    assert done.completed_at == NOW

    with pytest.raises(ValidationError):
        transition(reading, ReadingStatus.SAVED, NOW)
    with pytest.raises(ValidationError):
        transition(done, ReadingStatus.ARCHIVED, NOW)
    assert transition(done, ReadingStatus.COMPLETED, NOW) is done


@pytest.mark.asyncio
async def test_save_is_idempotent() -> None:
    store = InMemoryStore()
    loop = ReadingLoop(store)
    first = await loop.save("a", NOW)
    again = await loop.save("a", NOW + timedelta(days=1))
    assert again.saved_at == first.saved_at


@pytest.mark.asyncio
async def test_move_unknown_item_returns_none() -> None:
    assert await ReadingLoop(InMemoryStore()).move("missing", ReadingStatus.READING, NOW) is None


@pytest.mark.asyncio
async def test_archive_after_thirty_days() -> None:
    """Untouched saved or reading items archive at 30 days; completed ones stay."""
    store = InMemoryStore()
    for item in [saved("old", 31), saved("reading", 30, ReadingStatus.READING), saved("fresh", 10),
                 saved("done", 40, ReadingStatus.COMPLETED)]:
        store.saved[item.content_id] = item

    archived = await ReadingLoop(store).archive_expired(NOW)

    assert {i.content_id for i in archived} == {"old", "reading"}
    assert store.saved["old"].status == ReadingStatus.ARCHIVED
    assert store.saved["old"].archived_at == NOW
    assert store.saved["fresh"].status == ReadingStatus.SAVED
    assert store.saved["done"].status == ReadingStatus.COMPLETED


@pytest.mark.asyncio
async def test_nearing_archive_announces_once() -> None:
    store = InMemoryStore()
    for item in [saved("due", 25.5), saved("later", 24), saved("past", 26.5)]:
        store.saved[item.content_id] = item
    nearing = await ReadingLoop(store).nearing_archive(NOW)
    assert [i.content_id for i in nearing] == ["due"]
