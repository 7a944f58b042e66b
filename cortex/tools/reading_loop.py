from datetime import datetime, timedelta
from typing import List, Optional

from cortex.models.errors import ValidationError
from cortex.models.items import ReadingStatus, SavedItem, utcnow
from cortex.services.logger import logger
from cortex.services.repositories import SavedItemRepository

ARCHIVE_AFTER_DAYS = 30
NOTICE_AFTER_DAYS = 25

# Forward-only order, archived is terminal
_RANK = {
    ReadingStatus.SAVED: 0,
    ReadingStatus.READING: 1,
    ReadingStatus.COMPLETED: 2,
    ReadingStatus.ARCHIVED: 2,
}

def transition(item: SavedItem, status: ReadingStatus, now: Optional[datetime] = None) -> SavedItem:
    if item.status == status:
        return item
    if item.status in (ReadingStatus.COMPLETED, ReadingStatus.ARCHIVED) or _RANK[status] < _RANK[item.status]:
        raise ValidationError(f"Cannot move {item.content_id} from {item.status.value} to {status.value}")

    now = now or utcnow()
    changes = {"status": status}
    if status == ReadingStatus.READING:
        changes["reading_started_at"] = now
    elif status == ReadingStatus.COMPLETED:
        changes["completed_at"] = now
    elif status == ReadingStatus.ARCHIVED:
        changes["archived_at"] = now
    return item.model_copy(update=changes)

class ReadingLoop:
    """Saved items move saved -> reading -> completed, or get archived when left untouched for 30 days."""

    def __init__(self, repo: SavedItemRepository):
        self.repo = repo

    async def save(self, content_id: str, now: Optional[datetime] = None) -> SavedItem:
        existing = await self.repo.get_saved_item(content_id)
        if existing:
            return existing
        item = SavedItem(content_id=content_id, saved_at=now or utcnow())
        await self.repo.save_saved_item(item)
        return item

    async def move(self, content_id: str, status: ReadingStatus, now: Optional[datetime] = None) -> Optional[SavedItem]:
        item = await self.repo.get_saved_item(content_id)
        if item is None:
            return None
        updated = transition(item, status, now)
        if updated is not item:
            await self.repo.save_saved_item(updated)
        return updated

    async def archive_expired(self, now: Optional[datetime] = None) -> List[SavedItem]:
        now = now or utcnow()
        cutoff = now - timedelta(days=ARCHIVE_AFTER_DAYS)
        archived = []
        for item in await self.repo.list_saved_items([ReadingStatus.SAVED, ReadingStatus.READING]):
            if item.saved_at <= cutoff:
                updated = transition(item, ReadingStatus.ARCHIVED, now)
                await self.repo.save_saved_item(updated)
                archived.append(updated)
        if archived:
            logger.info(f"📦 Archived {len(archived)} saved items untouched for {ARCHIVE_AFTER_DAYS} days")
        return archived

    async def nearing_archive(self, now: Optional[datetime] = None) -> List[SavedItem]:
        now = now or utcnow()
        # One-day window so each item is announced once
        notice = now - timedelta(days=NOTICE_AFTER_DAYS)
        cutoff = now - timedelta(days=NOTICE_AFTER_DAYS + 1)
        return [
            item for item in await self.repo.list_saved_items([ReadingStatus.SAVED, ReadingStatus.READING])
            if cutoff < item.saved_at <= notice
        ]
