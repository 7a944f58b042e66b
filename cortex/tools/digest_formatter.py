from html import escape
from typing import List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from cortex.models.items import BriefingItem, Channel

CHANNEL_LABELS = {
    Channel.TECH: "💻 TECH",
    Channel.WORLD: "🌏 WORLD",
    Channel.CULTURE: "🎬 CULTURE",
    Channel.CANADA: "🍁 TORONTO",
    Channel.SERENDIPITY: "🎲 SERENDIPITY",
}

def format_digest(items: List[BriefingItem], digest_date: str, mode: str) -> str:
    title = "주말 큐레이션" if mode == "curated" else "오늘의 브리핑"
    lines = [f"<b>☀️ {title}</b> · {escape(digest_date)}", ""]
    current = None
    for n, item in enumerate(items, start=1):
        if item.channel != current:
            current = item.channel
            lines.append(f"<b>{CHANNEL_LABELS.get(item.channel, item.channel.value)}</b>")
        marker = " 🔁 <i>후속</i>" if item.is_following else ""
        lines.append(f"{n}. <a href=\"{escape(item.source_url, quote=True)}\">{escape(item.title)}</a>{marker}")
        if item.summary and item.summary != item.title:
            lines.append(f"   {escape(item.summary)}")
        lines.append("")
    return "\n".join(lines).rstrip()

def build_digest_keyboard(items: List[BriefingItem], web_base_url: str) -> InlineKeyboardMarkup:
    """One row of reactions per numbered item, then a link to the web view."""
    rows = [
        [
            InlineKeyboardButton(f"{n} 👍", callback_data=f"like:{item.id}"),
            InlineKeyboardButton(f"{n} 👎", callback_data=f"dislike:{item.id}"),
            InlineKeyboardButton(f"{n} 🔖", callback_data=f"save:{item.id}"),
        ]
        for n, item in enumerate(items, start=1)
    ]
    rows.append([InlineKeyboardButton("👉 웹에서 보기", url=web_base_url)])
    return InlineKeyboardMarkup(rows)
