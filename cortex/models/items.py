from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, List, Literal
from datetime import datetime, timezone
from enum import Enum
import uuid

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, float(value)))

class Channel(str, Enum):
    TECH = "tech"
    WORLD = "world"
    CULTURE = "culture"
    CANADA = "canada"
    SERENDIPITY = "serendipity"

COLLECTED_CHANNELS = [Channel.TECH, Channel.WORLD, Channel.CULTURE, Channel.CANADA]

class CollectedItem(BaseModel):
    """One piece of content as it came out of a source, before persistence."""
    model_config = ConfigDict(frozen=True)

    channel: Channel
    source: str
    source_url: str  # Natural key
    title: str
    full_text: Optional[str] = None
    published_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)

class CollectorError(BaseModel):
    source: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)

class ChannelResult(BaseModel):
    channel: Channel
    items: List[CollectedItem] = Field(default_factory=list)
    errors: List[CollectorError] = Field(default_factory=list)

class ContentRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    channel: Channel
    source: str
    source_url: str
    title: str
    full_text: Optional[str] = None
    published_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    ai_tags: List[str] = Field(default_factory=list)
    score_initial: Optional[float] = None
    collected_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_collected(cls, item: CollectedItem) -> "ContentRecord":
        return cls(**item.model_dump())

    @property
    def all_tags(self) -> List[str]:
        """AI tags first, then source tags, without repeats."""
        seen = []
        for tag in self.ai_tags + self.tags:
            if tag not in seen:
                seen.append(tag)
        return seen

class SummarizeInput(BaseModel):
    id: str
    title: str
    full_text: Optional[str] = None
    source: str
    channel: Channel

    @classmethod
    def from_record(cls, record: ContentRecord) -> "SummarizeInput":
        return cls(id=record.id, title=record.title, full_text=record.full_text,
                   source=record.source, channel=record.channel)

class SummarizeResult(BaseModel):
    id: str
    summary: str
    tags: List[str] = Field(default_factory=list, max_length=5)
    score: float
    tokens_used: int = 0  # 0 marks a fallback result

    @field_validator("score")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return clamp_score(v)

class InterestProfileEntry(BaseModel):
    topic: str
    score: float = 0.5
    interaction_count: int = 0
    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("score")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return clamp_score(v)

FeedbackKind = Literal["liked", "saved", "memo", "web_open", "link_click", "skipped", "disliked"]
POSITIVE_FEEDBACK = ("liked", "saved", "memo", "web_open", "link_click")

class FeedbackEvent(BaseModel):
    content_id: str
    kind: FeedbackKind
    created_at: datetime = Field(default_factory=utcnow)

class BriefingItem(BaseModel):
    id: str
    channel: Channel
    score: float
    tags: List[str] = Field(default_factory=list)
    source_url: str
    title: str
    summary: Optional[str] = None
    source: Optional[str] = None
    score_initial: Optional[float] = None
    is_following: bool = False  # Same issue kept showing up in recent digests

    @field_validator("score")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return clamp_score(v)

TriggerType = Literal["toronto_weather", "keyword_breaking"]

class AlertSetting(BaseModel):
    trigger_type: TriggerType
    enabled: bool = True
    quiet_hours_start: str = "23:00"  # HH:MM, local time
    quiet_hours_end: str = "07:00"
    last_triggered_at: Optional[datetime] = None
    daily_count: int = 0
    daily_count_reset_at: Optional[datetime] = None

class AlertLogEntry(BaseModel):
    trigger_type: TriggerType
    content_id: str
    day: str  # YYYY-MM-DD in the configured timezone
    message: str = ""
    sent_at: datetime = Field(default_factory=utcnow)

class AlertTrigger(BaseModel):
    """A candidate alert produced by a trigger check, not yet gated."""
    trigger_type: TriggerType
    content_id: str
    message: str
    url: Optional[str] = None

class ReadingStatus(str, Enum):
    SAVED = "saved"
    READING = "reading"
    COMPLETED = "completed"
    ARCHIVED = "archived"

class SavedItem(BaseModel):
    content_id: str
    status: ReadingStatus = ReadingStatus.SAVED
    saved_at: datetime = Field(default_factory=utcnow)
    reading_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

class WeatherData(BaseModel):
    temperature: float
    feels_like: float
    temp_max: Optional[float] = None
    temp_min: Optional[float] = None
    condition: str = ""
    description: str = ""
    humidity: Optional[float] = None
    wind_speed: float = 0.0
    precipitation: float = 0.0  # Snow in the last hour
    alert_flag: bool = False

class WeatherAlertCondition(BaseModel):
    is_blizzard: bool = False
    is_cold_snap: bool = False
    has_storm: bool = False

class Digest(BaseModel):
    id: Optional[int] = None
    digest_date: str
    mode: Literal["routine", "curated"]
    item_ids: List[str] = Field(default_factory=list)
    delivery_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

class RunReport(BaseModel):
    """Structured outcome of one collection run, returned to the trigger caller."""
    collected: Dict[str, int] = Field(default_factory=lambda: {c.value: 0 for c in COLLECTED_CHANNELS})
    summarized: int = 0
    cached: int = 0
    duplicatesSkipped: int = 0
    fallbacks: int = 0
    tokensUsed: int = 0
    errors: List[str] = Field(default_factory=list)

class LLMResponse(BaseModel):
    text: str
    tokens_used: int = 0

class GateDecision(BaseModel):
    allowed: bool
    reason: Optional[Literal["disabled", "quiet_hours", "daily_cap", "duplicate"]] = None

    def __bool__(self) -> bool:
        return self.allowed

class AlertOutcome(BaseModel):
    trigger: AlertTrigger
    decision: GateDecision
    delivery_id: Optional[str] = None
    error: Optional[str] = None

class BriefingOutcome(BaseModel):
    sent: bool = False
    skipped_reason: Optional[str] = None
    mode: Optional[str] = None
    item_count: int = 0
    delivery_id: Optional[str] = None
    reduction: int = 0
    errors: List[str] = Field(default_factory=list)
