"""
Digest selection: per-channel quotas plus one serendipity pick.

The serendipity pick deliberately leans toward topics the reader has shown
little interest in, so the digest does not collapse onto a few favourites.
"""
import random
from typing import Dict, List, Literal, Optional

from cortex.models.items import BriefingItem, Channel

BriefingMode = Literal["routine", "curated"]

ROUTINE_QUOTA: Dict[Channel, int] = {
    Channel.TECH: 3,
    Channel.WORLD: 2,
    Channel.CULTURE: 1,
    Channel.CANADA: 2,
}

# Weekend edition: fewer, slower items
CURATED_QUOTA: Dict[Channel, int] = {
    Channel.TECH: 2,
    Channel.WORLD: 1,
    Channel.CULTURE: 1,
    Channel.CANADA: 1,
}

QUOTAS: Dict[str, Dict[Channel, int]] = {"routine": ROUTINE_QUOTA, "curated": CURATED_QUOTA}

SERENDIPITY_FLOOR = 0.2
UNTAGGED_WEIGHT = 1.2

def select_by_quota(candidates: List[BriefingItem], quota: Dict[Channel, int]) -> List[BriefingItem]:
    selected: List[BriefingItem] = []
    for channel, limit in quota.items():
        in_channel = [c for c in candidates if c.channel == channel]
        in_channel.sort(key=lambda c: c.score, reverse=True)
        selected.extend(in_channel[:limit])
    return selected

def apply_volume_reduction(selected: List[BriefingItem], reduction: int) -> List[BriefingItem]:
    """Drops the `reduction` lowest-scoring items, always keeping at least one."""
    if reduction <= 0 or len(selected) <= 1:
        return selected
    keep = max(1, len(selected) - reduction)
    kept_ids = {i.id for i in sorted(selected, key=lambda i: i.score, reverse=True)[:keep]}
    return [i for i in selected if i.id in kept_ids]

def serendipity_weight(item: BriefingItem, interests: Dict[str, float]) -> float:
    if not item.tags:
        return UNTAGGED_WEIGHT
    mean = sum(interests.get(tag, 0.0) for tag in item.tags) / len(item.tags)
    return 1.0 - mean + SERENDIPITY_FLOOR

def pick_serendipity(candidates: List[BriefingItem], selected: List[BriefingItem],
                     interests: Dict[str, float], rng: random.Random) -> Optional[BriefingItem]:
    """One roulette-wheel draw over the unselected pool, or over everything once that pool is empty."""
    chosen_ids = {s.id for s in selected}
    pool = [c for c in candidates if c.id not in chosen_ids] or list(candidates)
    if not pool:
        return None

    weights = [max(0.0, serendipity_weight(c, interests)) for c in pool]
    total = sum(weights)
    if total <= 0:
        return pool[rng.randrange(len(pool))]

    point = rng.random() * total
    cumulative = 0.0
    for item, weight in zip(pool, weights):
        cumulative += weight
        if point < cumulative:
            return item
    return pool[-1]

class BriefingSelector:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def select(self, candidates: List[BriefingItem], mode: BriefingMode = "routine",
               interests: Optional[Dict[str, float]] = None, reduction: int = 0,
               enabled_channels: Optional[List[Channel]] = None) -> List[BriefingItem]:
        quota = QUOTAS[mode]
        if enabled_channels is not None:
            quota = {c: n for c, n in quota.items() if c in enabled_channels}
            candidates = [c for c in candidates if c.channel in enabled_channels]

        selected = apply_volume_reduction(select_by_quota(candidates, quota), reduction)
        extra = pick_serendipity(candidates, selected, interests or {}, self.rng)
        if extra is not None:
            selected = selected + [extra.model_copy(update={"channel": Channel.SERENDIPITY})]
        return selected
