"""
Interactive Telegram Bot Service
Receives reactions to digest items and a few control commands.
"""
from telegram import Update
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes
from cortex.config import settings
from cortex.models.errors import CortexError
from cortex.services.logger import logger
from cortex.services.notifier import parse_callback_data
from cortex.models.items import utcnow
from cortex.tools.fatigue import mute_until, set_mute
from cortex.tools.feedback import FeedbackService

# Global flag to track if pipeline is running
_pipeline_running = False

FEEDBACK_REPLIES = {
    "liked": "👍 반영했어요",
    "disliked": "👎 비슷한 내용은 줄일게요",
    "saved": "🔖 저장했어요",
}

async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Show available commands."""
    help_text = """
🤖 **Cortex Bot Commands**

/run - Collect, summarize and send today's briefing
/status - Run state, mute and digest volume
/mute <days> - Pause briefings (0 to resume)
/help - Show this help message

Use the 👍 👎 🔖 buttons under each briefing to tune what you get.
"""
    await update.message.reply_text(help_text, parse_mode='Markdown')

async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Run state, mute and digest volume at a glance."""
    pipeline = context.application.bot_data["pipeline"]
    lines = ["⏳ Pipeline is running..." if _pipeline_running else "✅ Pipeline is idle. Use /run to start."]

    until = await mute_until(pipeline.store)
    if until and until > utcnow():
        lines.append(f"🔕 Briefings muted until {until:%Y-%m-%d %H:%M} UTC")
    reduction = await pipeline.volume.current()
    if reduction:
        lines.append(f"📉 Digest trimmed by {reduction} items (no reactions lately)")
    channels = await pipeline.enabled_channels()
    lines.append("📡 Channels: " + ", ".join(c.value for c in channels))
    await update.message.reply_text("\n".join(lines))

async def cmd_mute(update: Update, context: ContextTypes.DEFAULT_TYPE):
    pipeline = context.application.bot_data["pipeline"]
    try:
        days = int(context.args[0]) if context.args else 1
    except ValueError:
        await update.message.reply_text("Usage: /mute <days>\nExample: /mute 3")
        return
    until = await set_mute(pipeline.store, days)
    if until:
        await update.message.reply_text(f"🔕 Muted until {until:%Y-%m-%d %H:%M} UTC")
    else:
        await update.message.reply_text("🔔 Briefings resumed")

async def cmd_run(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Run collection and send the briefing."""
    global _pipeline_running

    if _pipeline_running:
        await update.message.reply_text("⏳ Pipeline is already running. Please wait.")
        return

    await update.message.reply_text("🚀 Starting pipeline... This may take a few minutes.")
    _pipeline_running = True

    pipeline = context.application.bot_data["pipeline"]
    try:
        report = await pipeline.run_collection()
        outcome = await pipeline.run_briefing()
        await update.message.reply_text(
            f"✅ Collected {sum(report.collected.values())}, summarized {report.summarized}, "
            f"briefing {'sent' if outcome.sent else outcome.skipped_reason}."
        )
    except Exception as e:
        logger.error(f"Telegram /run failed: {e}")
        await update.message.reply_text(f"❌ Pipeline failed: {str(e)[:200]}")
    finally:
        _pipeline_running = False

async def on_feedback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Inline button press: like/dislike/save:<content_id>."""
    query = update.callback_query
    parsed = parse_callback_data(query.data)
    if parsed is None:
        await query.answer("Unknown action")
        return

    kind, content_id = parsed
    service: FeedbackService = context.application.bot_data["feedback"]
    try:
        await service.record(content_id, kind)
    except CortexError as e:
        logger.warning(f"Feedback {kind} on {content_id} rejected: {e}")
        await query.answer("⚠️ 반영하지 못했어요")
        return
    await query.answer(FEEDBACK_REPLIES[kind])

def create_telegram_bot(pipeline) -> Application:
    """Create and configure the Telegram bot application."""
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("TELEGRAM_BOT_TOKEN not set. Bot will not start.")
        return None

    app = Application.builder().token(settings.TELEGRAM_BOT_TOKEN).build()
    app.bot_data["pipeline"] = pipeline
    app.bot_data["feedback"] = FeedbackService(pipeline.store)

    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("start", cmd_help))  # Same as help
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("mute", cmd_mute))
    app.add_handler(CommandHandler("run", cmd_run))
    app.add_handler(CallbackQueryHandler(on_feedback, pattern=r"^(like|dislike|save):"))

    return app
