import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from cortex.config import settings
from cortex.models.errors import CortexError, PersistenceError
from cortex.models.items import (
    COLLECTED_CHANNELS, BriefingItem, BriefingOutcome, Channel, ContentRecord, Digest,
    RunReport, SummarizeInput, utcnow,
)
from cortex.services.logger import logger
from cortex.services.notifier import TelegramNotifier
from cortex.services.repositories import Store
from cortex.tools.channels import build_channels
from cortex.tools.digest_formatter import build_digest_keyboard, format_digest
from cortex.tools.editorial import EDITORIAL_SCORE, EditorialSelector
from cortex.tools.fatigue import VolumeController, detect_repeating_issues, is_muted, local_now, REPEAT_WINDOW
from cortex.tools.orchestrator import ChannelOrchestrator
from cortex.tools.reading_loop import ReadingLoop
from cortex.tools.scoring import (
    composite_tech_score, content_score, context_score, normalize_topics, recency_score,
)
from cortex.tools.selector import BriefingSelector
from cortex.tools.summarizer import Summarizer

LOOKBACK = timedelta(hours=24)

def channel_pref_key(channel: Channel) -> str:
    return f"CHANNEL_{channel.value.upper()}_ENABLED"

class Pipeline:
    """
    Orchestrates the three scheduled runs:
    1. Collection (Collect -> Dedup -> Save -> Summarize)
    2. Briefing (Score -> Select -> Format -> Send)
    3. Reading loop upkeep (Archive -> Remind)
    Alerts run separately through AlertService.
    """
    def __init__(self, store: Store,
                 channels: Optional[Dict[Channel, ChannelOrchestrator]] = None,
                 summarizer: Optional[Summarizer] = None,
                 editorial: Optional[EditorialSelector] = None,
                 notifier: Optional[TelegramNotifier] = None,
                 selector: Optional[BriefingSelector] = None):
        self.store = store
        self._channels = channels
        self._summarizer = summarizer
        self._editorial = editorial
        self._notifier = notifier
        self.selector = selector or BriefingSelector()
        self.volume = VolumeController(store, store)
        self.reading = ReadingLoop(store)

    # Built lazily so a run that never reaches a stage never needs its client
    @property
    def channels(self) -> Dict[Channel, ChannelOrchestrator]:
        if self._channels is None:
            self._channels = build_channels()
        return self._channels

    @property
    def summarizer(self) -> Summarizer:
        if self._summarizer is None:
            self._summarizer = Summarizer()
        return self._summarizer

    @property
    def editorial(self) -> EditorialSelector:
        if self._editorial is None:
            self._editorial = EditorialSelector(self.summarizer.llm)
        return self._editorial

    @property
    def notifier(self) -> TelegramNotifier:
        if self._notifier is None:
            self._notifier = TelegramNotifier()
        return self._notifier

    async def enabled_channels(self) -> List[Channel]:
        enabled = []
        for channel in COLLECTED_CHANNELS:
            value = await self.store.get_preference(channel_pref_key(channel), "true")
            if (value or "true").lower() == "true":
                enabled.append(channel)
        return enabled

    # --- Phase 1: collection ---

    async def run_collection(self, now: Optional[datetime] = None) -> RunReport:
        now = now or utcnow()
        report = RunReport()
        logger.info("🚀 Collection run started")

        enabled = [c for c in await self.enabled_channels() if c in self.channels]
        results = await asyncio.gather(*(self.channels[c].collect() for c in enabled))

        duplicate_urls: List[str] = []
        for result in results:
            report.collected[result.channel.value] = len(result.items)
            report.errors.extend(f"{e.source}: {e.message}" for e in result.errors)
            for item in result.items:
                try:
                    if not await self.store.upsert_item(item):
                        duplicate_urls.append(item.source_url)
                except PersistenceError as e:
                    logger.error(str(e))
                    report.errors.append(str(e))

        report.duplicatesSkipped = len(duplicate_urls)
        report.cached = await self.store.count_summarized(duplicate_urls)

        pending = await self.store.get_unsummarized(now - LOOKBACK)
        await self._summarize(pending, report)

        logger.info(
            f"✅ Collection done: {report.collected}, summarized {report.summarized} "
            f"({report.fallbacks} fallbacks), {report.duplicatesSkipped} duplicates, {len(report.errors)} errors"
        )
        return report

    async def _summarize(self, pending: List[ContentRecord], report: RunReport):
        if not pending:
            return
        by_channel: Dict[Channel, List[SummarizeInput]] = {}
        for record in pending:
            by_channel.setdefault(record.channel, []).append(SummarizeInput.from_record(record))

        overrides: Dict[str, float] = {}
        world = by_channel.get(Channel.WORLD, [])
        if world:
            picks = await self.editorial.select([f"[{w.source}] {w.title}" for w in world])
            overrides = {world[i].id: EDITORIAL_SCORE for i in picks}

        outputs = await self.summarizer.summarize_channels(by_channel, overrides)
        for results in outputs.values():
            for result in results:
                # Each write stands alone so one bad row does not lose the rest
                try:
                    await self.store.update_summary(result.id, result.summary, result.tags, result.score)
                except PersistenceError as e:
                    logger.error(str(e))
                    report.errors.append(str(e))
                    continue
                report.summarized += 1
                report.tokensUsed += result.tokens_used
                if result.tokens_used == 0:
                    report.fallbacks += 1

    # --- Phase 2: briefing ---

    def briefing_mode(self, now: Optional[datetime] = None) -> str:
        return "curated" if local_now(now).weekday() >= 5 else "routine"

    async def build_candidates(self, records: List[ContentRecord], now: datetime) -> tuple[List[BriefingItem], Dict[str, float]]:
        tags_by_id = {r.id: normalize_topics(r.all_tags) for r in records}
        all_topics = sorted({t for tags in tags_by_id.values() for t in tags})
        profile = await self.store.get_interests(all_topics)
        interests = {topic: entry.score for topic, entry in profile.items()}

        candidates = []
        for record in records:
            tags = tags_by_id[record.id]
            initial = record.score_initial if record.score_initial is not None else 0.5
            score = initial
            if record.channel == Channel.TECH and settings.CONTEXT_KEYWORDS:
                score = composite_tech_score(
                    initial,
                    interest=content_score(tags, profile),
                    context=context_score(tags, settings.CONTEXT_KEYWORDS),
                    recency=recency_score(record.published_at or record.collected_at, now),
                )
            candidates.append(BriefingItem(
                id=record.id, channel=record.channel, score=score, tags=tags,
                source_url=record.source_url, title=record.title, summary=record.summary,
                source=record.source, score_initial=record.score_initial,
            ))
        return candidates, interests

    async def run_briefing(self, mode: Optional[str] = None, now: Optional[datetime] = None) -> BriefingOutcome:
        now = now or utcnow()
        if await is_muted(self.store, now):
            logger.info("🔕 Briefing muted, skipping")
            return BriefingOutcome(skipped_reason="muted")

        mode = mode or self.briefing_mode(now)
        records = await self.store.get_summarized_since(now - LOOKBACK)
        candidates, interests = await self.build_candidates(records, now)
        if not candidates:
            logger.warning("No summarized items in the last 24h, nothing to send")
            return BriefingOutcome(mode=mode, skipped_reason="no_candidates")

        reduction = await self.volume.update(now) if mode == "routine" else 0
        selected = self.selector.select(candidates, mode, interests, reduction, await self.enabled_channels())

        past = await self.store.recent_digests(REPEAT_WINDOW)
        following = detect_repeating_issues([i.id for i in selected], past)
        selected = [i.model_copy(update={"is_following": i.id in following}) for i in selected]

        digest_date = local_now(now).date().isoformat()
        text = format_digest(selected, digest_date, mode)
        try:
            delivery_id = await self.notifier.send(text, keyboard=build_digest_keyboard(selected, settings.WEB_BASE_URL))
        except CortexError as e:
            if getattr(e, "mandatory", False):
                raise
            logger.error(f"❌ Failed to deliver {mode} briefing: {e}")
            return BriefingOutcome(mode=mode, item_count=len(selected), reduction=reduction,
                                   skipped_reason="delivery_failed", errors=[str(e)])

        await self.store.save_digest(Digest(
            digest_date=digest_date, mode=mode, item_ids=[i.id for i in selected],
            delivery_id=delivery_id, created_at=now,
        ))
        logger.info(f"✅ {mode} briefing sent with {len(selected)} items (reduction {reduction})")
        return BriefingOutcome(sent=True, mode=mode, item_count=len(selected),
                               delivery_id=delivery_id, reduction=reduction)

    # --- Phase 3: reading loop ---

    async def run_reading_loop(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        archived = await self.reading.archive_expired(now)
        nearing = await self.reading.nearing_archive(now)
        reminded = 0
        errors: List[str] = []
        if nearing:
            titles = []
            for item in nearing:
                content = await self.store.get_content(item.content_id)
                titles.append(f"• {content.title if content else item.content_id}")
            try:
                await self.notifier.send("📚 곧 보관될 저장 항목이 있어요:\n" + "\n".join(titles), parse_mode=None)
                reminded = len(nearing)
            except CortexError as e:
                if getattr(e, "mandatory", False):
                    raise
                logger.error(f"❌ Failed to send archive reminder: {e}")
                errors.append(str(e))
        return {"archived": len(archived), "reminded": reminded, "errors": errors}
