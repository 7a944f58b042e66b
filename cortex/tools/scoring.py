"""
Interest profile maintenance and content scoring.

Topic scores follow an exponential moving average of feedback weights, so recent
reactions move a topic more than old ones and no single reaction can push it
out of [0, 1].
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from cortex.models.items import InterestProfileEntry, clamp_score, utcnow
from cortex.services.repositories import InterestRepository

EMA_ALPHA = 0.3
DEFAULT_TOPIC_SCORE = 0.5

FEEDBACK_WEIGHTS: Dict[str, float] = {
    "liked": 1.0,
    "saved": 0.8,
    "memo": 0.8,
    "web_open": 0.5,
    "link_click": 0.4,
    "skipped": -0.3,
    "disliked": -0.8,
}

TECH_WEIGHTS = {"interest": 0.6, "context": 0.3, "recency": 0.1}
RECENCY_WINDOW_HOURS = 24.0

def ema_update(current: float, weight: float, alpha: float = EMA_ALPHA) -> float:
    return clamp_score(alpha * weight + (1 - alpha) * current)

def normalize_topics(tags: Iterable[str]) -> List[str]:
    topics: List[str] = []
    for tag in tags:
        topic = (tag or "").strip().lower()
        if topic and topic not in topics:
            topics.append(topic)
    return topics

def content_score(tags: List[str], profile: Dict[str, InterestProfileEntry]) -> float:
    """Mean interest over the item's tags. Unknown tags and untagged items count as neutral."""
    if not tags:
        return DEFAULT_TOPIC_SCORE
    scores = [profile[t].score if t in profile else DEFAULT_TOPIC_SCORE for t in tags]
    return sum(scores) / len(scores)

def context_score(tags: List[str], context_keywords: List[str]) -> float:
    """Share of tags that match a context keyword, either way round, case-insensitive."""
    if not tags or not context_keywords:
        return 0.0
    keywords = [k.lower() for k in context_keywords if k]
    matched = sum(
        1 for tag in tags
        if any(tag.lower() in kw or kw in tag.lower() for kw in keywords)
    )
    return matched / len(tags)

def recency_score(published_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    if published_at is None:
        return 0.0
    now = now or utcnow()
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    age_hours = max(0.0, (now - published_at).total_seconds() / 3600)
    return clamp_score(1 - age_hours / RECENCY_WINDOW_HOURS)

def composite_tech_score(score_initial: float, interest: Optional[float] = None,
                         context: Optional[float] = None, recency: Optional[float] = None) -> float:
    if interest is None or context is None or recency is None:
        return clamp_score(score_initial)
    return clamp_score(
        TECH_WEIGHTS["interest"] * interest
        + TECH_WEIGHTS["context"] * context
        + TECH_WEIGHTS["recency"] * recency
    )

class InterestScoringEngine:
    def __init__(self, repo: InterestRepository, alpha: float = EMA_ALPHA):
        self.repo = repo
        self.alpha = alpha

    async def apply_feedback(self, topics: List[str], kind: str,
                             now: Optional[datetime] = None) -> Dict[str, InterestProfileEntry]:
        """Moves every topic toward the feedback weight. Unseen topics start at 0.5."""
        if kind not in FEEDBACK_WEIGHTS:
            raise ValueError(f"Unknown feedback kind: {kind}")
        topics = normalize_topics(topics)
        if not topics:
            return {}

        weight = FEEDBACK_WEIGHTS[kind]
        now = now or utcnow()
        current = await self.repo.get_interests(topics)
        updated = {}
        for topic in topics:
            entry = current.get(topic) or InterestProfileEntry(topic=topic, score=DEFAULT_TOPIC_SCORE)
            new_entry = InterestProfileEntry(
                topic=topic,
                score=ema_update(entry.score, weight, self.alpha),
                interaction_count=entry.interaction_count + 1,
                last_updated=now,
            )
            await self.repo.upsert_interest(new_entry)
            updated[topic] = new_entry
        return updated

    async def load_profile(self, topics: Iterable[str]) -> Dict[str, InterestProfileEntry]:
        return await self.repo.get_interests(normalize_topics(topics))
