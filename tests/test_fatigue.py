"""Tests for the alert gate, digest volume control, mute and repeat detection."""

from datetime import datetime, time, timedelta, timezone

import pytest

from cortex.models.items import AlertLogEntry, AlertSetting, AlertTrigger, Digest, FeedbackEvent
from cortex.tools.fatigue import (
    MAX_ITEM_REDUCTION, REDUCTION_KEY, AlertGate, VolumeController, detect_repeating_issues,
    is_muted, is_quiet_hours, local_day, mute_until, set_mute,
)

from fakes import InMemoryStore

NOON = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


def trigger(content_id: str = "weather:2025-01-06:blizzard") -> AlertTrigger:
    return AlertTrigger(trigger_type="toronto_weather", content_id=content_id, message="눈폭풍 주의")


def log(store: InMemoryStore, content_id: str, day: str = "2025-01-06") -> None:
    store.alert_log.append(AlertLogEntry(trigger_type="toronto_weather", content_id=content_id, day=day))


@pytest.mark.parametrize(
    "clock,expected",
    [(time(23, 30), True), (time(6, 30), True), (time(12, 0), False), (time(7, 0), False), (time(23, 0), True)],
)
def test_quiet_hours_wrap_past_midnight(clock: time, expected: bool) -> None:
    """23:00-07:00 covers late evening and early morning but not midday."""
    assert is_quiet_hours("23:00", "07:00", clock) is expected


def test_quiet_hours_same_day_window() -> None:
    assert is_quiet_hours("13:00", "15:00", time(14, 0)) is True
    assert is_quiet_hours("13:00", "15:00", time(15, 0)) is False
    assert is_quiet_hours("09:00", "09:00", time(9, 0)) is False


@pytest.mark.asyncio
async def test_gate_allows_fresh_trigger() -> None:
    gate = AlertGate(InMemoryStore(), tz="UTC")
    decision = await gate.evaluate(trigger(), NOON)
    assert decision.allowed and decision.reason is None
    assert bool(decision) is True


@pytest.mark.asyncio
async def test_disabled_wins_over_everything() -> None:
    store = InMemoryStore()
    store.alert_settings["toronto_weather"] = AlertSetting(trigger_type="toronto_weather", enabled=False)
    decision = await AlertGate(store, tz="UTC").evaluate(trigger(), NOON.replace(hour=23, minute=30))
    assert decision.reason == "disabled"


@pytest.mark.asyncio
async def test_quiet_hours_checked_before_cap() -> None:
    store = InMemoryStore()
    for i in range(3):
        log(store, f"c{i}")
    decision = await AlertGate(store, tz="UTC").evaluate(trigger(), NOON.replace(hour=6, minute=30))
    assert decision.reason == "quiet_hours"


@pytest.mark.asyncio
async def test_daily_cap_rejects_regardless_of_content() -> None:
    """Three alerts today already: the fourth is refused outside quiet hours too."""
    store = InMemoryStore()
    for i in range(3):
        log(store, f"c{i}")
    decision = await AlertGate(store, tz="UTC").evaluate(trigger("new"), NOON)
    assert decision.reason == "daily_cap"

    # Yesterday's alerts don't count
    store.alert_log.clear()
    for i in range(3):
        log(store, f"c{i}", day="2025-01-05")
    assert (await AlertGate(store, tz="UTC").evaluate(trigger("new"), NOON)).allowed


@pytest.mark.asyncio
async def test_duplicate_same_content_same_day() -> None:
    store = InMemoryStore()
    log(store, "weather:2025-01-06:blizzard")
    decision = await AlertGate(store, tz="UTC").evaluate(trigger(), NOON)
    assert decision.reason == "duplicate"


@pytest.mark.asyncio
async def test_day_boundary_follows_configured_timezone() -> None:
    """15:30 UTC on the 6th is already the 7th in Seoul."""
    store = InMemoryStore()
    for i in range(3):
        log(store, f"c{i}", day="2025-01-06")
    gate = AlertGate(store, tz="Asia/Seoul")
    at = datetime(2025, 1, 6, 3, 30, tzinfo=timezone.utc)  # 12:30 KST on the 6th
    assert (await gate.evaluate(trigger("x"), at)).reason == "daily_cap"
    assert local_day(datetime(2025, 1, 6, 15, 30, tzinfo=timezone.utc), "Asia/Seoul") == "2025-01-07"


@pytest.mark.asyncio
async def test_record_appends_log_and_counts() -> None:
    store = InMemoryStore()
    gate = AlertGate(store, tz="UTC")

    await gate.record(trigger("a"), NOON)
    await gate.record(trigger("b"), NOON + timedelta(hours=1))

    assert [e.content_id for e in store.alert_log] == ["a", "b"]
    setting = store.alert_settings["toronto_weather"]
    assert setting.daily_count == 2
    assert setting.last_triggered_at == NOON + timedelta(hours=1)

    await gate.record(trigger("c"), NOON + timedelta(days=1))
    assert store.alert_settings["toronto_weather"].daily_count == 1


@pytest.mark.asyncio
async def test_volume_reduction_grows_while_silent_and_freezes_on_feedback() -> None:
    store = InMemoryStore()
    volume = VolumeController(store, store)

    assert await volume.update(NOON) == 2
    assert await volume.update(NOON) == MAX_ITEM_REDUCTION
    assert await volume.update(NOON) == MAX_ITEM_REDUCTION

    store.prefs[REDUCTION_KEY] = "2"
    store.feedback.append(FeedbackEvent(content_id="x", kind="liked", created_at=NOON - timedelta(days=1)))
    assert await volume.update(NOON) == 2  # frozen, not reset
    assert store.prefs[REDUCTION_KEY] == "2"


@pytest.mark.asyncio
async def test_stale_or_negative_feedback_does_not_freeze() -> None:
    store = InMemoryStore()
    store.feedback.append(FeedbackEvent(content_id="x", kind="liked", created_at=NOON - timedelta(days=8)))
    store.feedback.append(FeedbackEvent(content_id="y", kind="disliked", created_at=NOON))
    assert await VolumeController(store, store).update(NOON) == 2


@pytest.mark.asyncio
async def test_mute_set_check_and_clear() -> None:
    store = InMemoryStore()

    until = await set_mute(store, 3, NOON)
    assert until == NOON + timedelta(days=3)
    assert await mute_until(store) == until
    assert await is_muted(store, NOON + timedelta(days=2))
    assert not await is_muted(store, NOON + timedelta(days=4))

    assert await set_mute(store, 0, NOON) is None
    assert not await is_muted(store, NOON)


def test_repeating_issue_needs_both_recent_digests() -> None:
    """Newest digest first; an id must be in each of the last two."""
    past = [
        Digest(digest_date="2025-01-05", mode="routine", item_ids=["a", "b"]),
        Digest(digest_date="2025-01-04", mode="routine", item_ids=["a", "c"]),
        Digest(digest_date="2025-01-03", mode="routine", item_ids=["b"]),
    ]
    assert detect_repeating_issues(["a", "b", "z"], past) == {"a"}
    assert detect_repeating_issues(["a"], past[:1]) == set()
