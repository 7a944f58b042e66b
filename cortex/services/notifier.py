"""
Outbound delivery to Telegram.

`send` posts one message, optionally with inline feedback buttons, and returns
the Telegram message id as the delivery id. A failed send is retried once.
"""
import asyncio
from datetime import timedelta
from typing import Optional

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import BadRequest, NetworkError, RetryAfter, TelegramError, TimedOut

from cortex.config import settings
from cortex.models.errors import ConfigurationError, RateLimited, SourceFetchError
from cortex.services.logger import logger
from cortex.services.retry import RetryPolicy, with_retry

# Callback data is "<action>:<content_id>"
FEEDBACK_ACTIONS = {
    "like": "liked",
    "dislike": "disliked",
    "save": "saved",
}

def build_feedback_keyboard(content_id: str, detail_url: str | None = None) -> InlineKeyboardMarkup:
    row = [
        InlineKeyboardButton("👍", callback_data=f"like:{content_id}"),
        InlineKeyboardButton("👎", callback_data=f"dislike:{content_id}"),
        InlineKeyboardButton("🔖", callback_data=f"save:{content_id}"),
    ]
    rows = [row]
    if detail_url:
        rows.append([InlineKeyboardButton("👉 자세히 보기", url=detail_url)])
    return InlineKeyboardMarkup(rows)

def parse_callback_data(data: str) -> tuple[str, str] | None:
    """'like:abc' -> ('liked', 'abc'). Unknown actions yield None."""
    action, sep, content_id = (data or "").partition(":")
    if not sep or not content_id or action not in FEEDBACK_ACTIONS:
        return None
    return FEEDBACK_ACTIONS[action], content_id

def _retry_after_seconds(value) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)

class TelegramNotifier:
    def __init__(self, bot: Bot | None = None, chat_id: str | None = None,
                 policy: RetryPolicy | None = None):
        self._bot = bot
        self.chat_id = chat_id or settings.TELEGRAM_CHAT_ID
        self.policy = policy or RetryPolicy(attempts=2, timeout=30.0, backoff=1.0)

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            settings.require("TELEGRAM_BOT_TOKEN")
            self._bot = Bot(settings.TELEGRAM_BOT_TOKEN)
        return self._bot

    async def send(self, text: str, parse_mode: str = ParseMode.HTML,
                   keyboard: Optional[InlineKeyboardMarkup] = None) -> str:
        if not self.chat_id:
            raise ConfigurationError("TELEGRAM_CHAT_ID is not set", mandatory=True)

        async def attempt():
            try:
                message = await self.bot.send_message(
                    chat_id=self.chat_id,
                    text=text,
                    parse_mode=parse_mode,
                    reply_markup=keyboard,
                    link_preview_options=LinkPreviewOptions(is_disabled=True),
                )
            except RetryAfter as e:
                raise RateLimited("Telegram throttled", retry_after=_retry_after_seconds(e.retry_after)) from e
            except BadRequest:
                # Not retryable
                raise
            except (TimedOut, NetworkError) as e:
                raise SourceFetchError(f"Telegram unreachable: {e}", source="telegram") from e
            return str(message.message_id)

        try:
            message_id = await with_retry(
                attempt, self.policy,
                retry_on=(RateLimited, SourceFetchError, asyncio.TimeoutError),
                label="Telegram send",
            )
        except TelegramError as e:
            logger.error(f"Telegram rejected message: {e}")
            raise SourceFetchError(f"Telegram rejected message: {e}", source="telegram") from e
        except asyncio.TimeoutError as e:
            raise SourceFetchError("Telegram send timed out", source="telegram") from e
        logger.info(f"📨 Telegram message sent (id={message_id})")
        return message_id
