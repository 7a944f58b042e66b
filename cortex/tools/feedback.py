from datetime import datetime
from typing import Dict, Optional

from cortex.models.errors import ValidationError
from cortex.models.items import FeedbackEvent, InterestProfileEntry, ReadingStatus, utcnow
from cortex.services.logger import logger
from cortex.services.repositories import Store
from cortex.tools.reading_loop import ReadingLoop
from cortex.tools.scoring import FEEDBACK_WEIGHTS, InterestScoringEngine, normalize_topics

class FeedbackService:
    """Records one reader reaction and folds it into the interest profile."""

    def __init__(self, store: Store):
        self.store = store
        self.engine = InterestScoringEngine(store)
        self.reading = ReadingLoop(store)

    async def record(self, content_id: str, kind: str, now: Optional[datetime] = None) -> Dict[str, InterestProfileEntry]:
        if kind not in FEEDBACK_WEIGHTS:
            raise ValidationError(f"Unknown feedback kind: {kind}")
        content = await self.store.get_content(content_id)
        if content is None:
            raise ValidationError(f"Unknown content id: {content_id}")

        now = now or utcnow()
        await self.store.record_feedback(FeedbackEvent(content_id=content_id, kind=kind, created_at=now))
        updated = await self.engine.apply_feedback(normalize_topics(content.all_tags), kind, now)

        if kind == "saved":
            await self.reading.save(content_id, now)
        elif kind in ("web_open", "link_click"):
            saved = await self.store.get_saved_item(content_id)
            if saved and saved.status == ReadingStatus.SAVED:
                await self.reading.move(content_id, ReadingStatus.READING, now)

        logger.info(f"Feedback {kind} on {content_id} updated {len(updated)} topics")
        return updated
