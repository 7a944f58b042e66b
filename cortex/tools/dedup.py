"""
Cross-source issue weighting for news headlines.

Two headlines describe the same issue when their keyword sets overlap by more
than half of the smaller set. Issues are grouped transitively and every item is
weighted by how many distinct sources covered its group.
"""
import re
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Set

from cortex.models.items import CollectedItem

SIMILARITY_THRESHOLD = 0.5
TOP_K = 15

KO_STOP_WORDS = {
    '의', '를', '이', '가', '은', '는', '에', '도', '로', '과', '와', '을', '한', '그', '등', '및',
    '에서', '으로', '부터', '까지', '이며', '이고', '이나', '에도',
}
EN_STOP_WORDS = {
    'the', 'a', 'an', 'is', 'are', 'was', 'were', 'be', 'been', 'being', 'in', 'on', 'at',
    'to', 'for', 'of', 'and', 'or', 'but', 'with', 'by', 'from',
}

_NON_WORD = re.compile(r"[^\w\sㄱ-힣]")
_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

class ScoredItem(NamedTuple):
    item: CollectedItem
    weight: int

def extract_keywords(title: str) -> Set[str]:
    words = _NON_WORD.sub(" ", title.lower()).split()
    return {w for w in words if len(w) >= 2 and w not in KO_STOP_WORDS and w not in EN_STOP_WORDS}

def similarity(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))

def _published_key(item: CollectedItem) -> datetime:
    dt = item.published_at
    if dt is None:
        return _EPOCH
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def score_by_cross_source(items: List[CollectedItem]) -> List[ScoredItem]:
    """Weights every item and sorts by weight, then recency, both descending."""
    if not items:
        return []

    keywords = [extract_keywords(item.title) for item in items]
    parent = list(range(len(items)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(items)):
        if not keywords[i]:
            continue
        for j in range(i + 1, len(items)):
            if similarity(keywords[i], keywords[j]) > SIMILARITY_THRESHOLD:
                parent[find(j)] = find(i)

    sources: Dict[int, Set[str]] = {}
    for i, item in enumerate(items):
        sources.setdefault(find(i), set()).add(item.source)

    scored = [ScoredItem(item, len(sources[find(i)])) for i, item in enumerate(items)]
    scored.sort(key=lambda s: (s.weight, _published_key(s.item)), reverse=True)
    return scored

def select_top_issues(items: List[CollectedItem], top_k: int = TOP_K) -> List[CollectedItem]:
    return [s.item for s in score_by_cross_source(items)[:top_k]]
