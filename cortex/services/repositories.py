"""
Storage interfaces the pipeline depends on.

Every stage receives the repository it needs instead of importing a store, so
tests can hand in an in-memory implementation.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from cortex.models.items import (
    AlertLogEntry, AlertSetting, CollectedItem, ContentRecord, Digest,
    FeedbackEvent, InterestProfileEntry, ReadingStatus, SavedItem,
)

class ContentRepository(ABC):
    @abstractmethod
    async def upsert_item(self, item: CollectedItem) -> bool:
        """Inserts by source_url. Returns False when the url was already stored."""

    @abstractmethod
    async def count_summarized(self, source_urls: List[str]) -> int:
        pass

    @abstractmethod
    async def get_unsummarized(self, since: datetime) -> List[ContentRecord]:
        """Items without a summary collected after `since`, by channel then newest first."""

    @abstractmethod
    async def update_summary(self, content_id: str, summary: str, tags: List[str], score: float) -> None:
        pass

    @abstractmethod
    async def get_content(self, content_id: str) -> Optional[ContentRecord]:
        pass

    @abstractmethod
    async def get_summarized_since(self, since: datetime) -> List[ContentRecord]:
        pass

class InterestRepository(ABC):
    @abstractmethod
    async def get_interests(self, topics: List[str]) -> Dict[str, InterestProfileEntry]:
        pass

    @abstractmethod
    async def upsert_interest(self, entry: InterestProfileEntry) -> None:
        pass

    @abstractmethod
    async def top_interests(self, limit: int) -> List[InterestProfileEntry]:
        pass

class FeedbackRepository(ABC):
    @abstractmethod
    async def record_feedback(self, event: FeedbackEvent) -> None:
        pass

    @abstractmethod
    async def has_positive_feedback_since(self, since: datetime) -> bool:
        pass

class AlertRepository(ABC):
    @abstractmethod
    async def get_alert_setting(self, trigger_type: str) -> AlertSetting:
        """Returns stored settings, or defaults when the trigger type has no row yet."""

    @abstractmethod
    async def save_alert_setting(self, setting: AlertSetting) -> None:
        pass

    @abstractmethod
    async def count_alerts(self, trigger_type: str, day: str) -> int:
        pass

    @abstractmethod
    async def alert_logged(self, trigger_type: str, content_id: str, day: str) -> bool:
        pass

    @abstractmethod
    async def append_alert_log(self, entry: AlertLogEntry) -> None:
        pass

class DigestRepository(ABC):
    @abstractmethod
    async def save_digest(self, digest: Digest) -> int:
        pass

    @abstractmethod
    async def recent_digests(self, limit: int) -> List[Digest]:
        """Newest first."""

class PreferenceRepository(ABC):
    @abstractmethod
    async def get_preference(self, key: str, default: str | None = None) -> str | None:
        pass

    @abstractmethod
    async def set_preference(self, key: str, value: str) -> None:
        pass

class SavedItemRepository(ABC):
    @abstractmethod
    async def get_saved_item(self, content_id: str) -> Optional[SavedItem]:
        pass

    @abstractmethod
    async def save_saved_item(self, item: SavedItem) -> None:
        pass

    @abstractmethod
    async def list_saved_items(self, statuses: List[ReadingStatus]) -> List[SavedItem]:
        pass

class Store(ContentRepository, InterestRepository, FeedbackRepository, AlertRepository,
            DigestRepository, PreferenceRepository, SavedItemRepository):
    """Everything the pipeline needs from persistence."""
