"""Tests for the Telegram command and reaction handlers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from cortex.models.items import Channel, ContentRecord
from cortex.services.telegram_bot import cmd_mute, cmd_status, on_feedback
from cortex.tools.feedback import FeedbackService
from cortex.workflows.pipeline import Pipeline

from fakes import InMemoryStore


def make_context(store: InMemoryStore, args=None):
    pipeline = Pipeline(store, channels={})
    bot_data = {"pipeline": pipeline, "feedback": FeedbackService(store)}
    return SimpleNamespace(application=SimpleNamespace(bot_data=bot_data), args=args or [])


def callback_update(data: str):
    return SimpleNamespace(callback_query=SimpleNamespace(data=data, answer=AsyncMock()))


def message_update():
    return SimpleNamespace(message=SimpleNamespace(reply_text=AsyncMock()))


@pytest.mark.asyncio
async def test_like_button_records_feedback() -> None:
    store = InMemoryStore()
    store.add_record(ContentRecord(id="c1", channel=Channel.TECH, source="hackernews",
                                   source_url="https://example.com/c1", title="t", ai_tags=["ai"]))
    update = callback_update("like:c1")

    await on_feedback(update, make_context(store))

    assert [e.kind for e in store.feedback] == ["liked"]
    update.callback_query.answer.assert_awaited_once_with("👍 반영했어요")


@pytest.mark.asyncio
async def test_reaction_on_unknown_item_is_answered_not_raised() -> None:
    store = InMemoryStore()
    update = callback_update("save:gone")

    await on_feedback(update, make_context(store))

    assert store.feedback == []
    update.callback_query.answer.assert_awaited_once()


@pytest.mark.asyncio
async def test_mute_command_sets_and_clears() -> None:
    store = InMemoryStore()
    update = message_update()

    await cmd_mute(update, make_context(store, ["3"]))
    assert store.prefs["mute_until"]

    await cmd_mute(update, make_context(store, ["0"]))
    assert store.prefs["mute_until"] == ""
    assert "resumed" in update.message.reply_text.await_args.args[0]


@pytest.mark.asyncio
async def test_status_lists_channels_and_reduction() -> None:
    store = InMemoryStore()
    store.prefs["item_reduction"] = "2"
    store.prefs["CHANNEL_CULTURE_ENABLED"] = "false"
    update = message_update()

    await cmd_status(update, make_context(store))

    text = update.message.reply_text.await_args.args[0]
    assert "trimmed by 2" in text
    assert "tech, world, canada" in text
