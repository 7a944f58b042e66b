"""
Batch summarization and initial scoring.

Each (channel, batch) becomes exactly one LLM call. Whatever goes wrong with
that call, every input still gets a result: a failed call or an unreadable
response falls back for the whole batch, a missing index falls back for that
item only.
"""
import asyncio
import json
from typing import Awaitable, Callable, Dict, List, Optional

from cortex.config import settings
from cortex.models.errors import ConfigurationError, CortexError, ParseError
from cortex.models.items import Channel, SummarizeInput, SummarizeResult, clamp_score
from cortex.services.llm import LLMService
from cortex.services.logger import logger
from cortex.services.retry import RetryPolicy, with_retry
from cortex.tools.llm_json import load_llm_json

BODY_LIMIT = 500
MAX_TAGS = 5
FALLBACK_SCORE = 0.5

# Sources whose items always get the same importance, whatever the model says
SOURCE_SCORE_OVERRIDES: Dict[str, float] = {
    "weather_toronto": 0.9,
}

SYSTEM_PROMPT = (
    "당신은 개인 브리핑 편집자입니다. 각 항목을 한국어 1~2문장으로 요약하고, "
    "주제 태그를 최대 5개 붙이고, 독자에게 얼마나 중요한지 0.0~1.0 점수를 매기세요. "
    "반드시 JSON 배열만 출력하세요: "
    '[{"index": 0, "summary": "...", "tags": ["..."], "score": 0.7}]'
)

CHANNEL_RUBRICS: Dict[Channel, str] = {
    Channel.TECH: (
        "기술 채널: 개발자에게 실질적인 영향(새 도구, 주요 릴리스, 보안 사고, 업계 구조 변화)이 "
        "클수록 높은 점수. 단순 홍보나 가십은 낮게."
    ),
    Channel.WORLD: (
        "세계/사회 채널: 정책, 경제, 외교처럼 구조적 파급력이 큰 뉴스를 높게. "
        "여러 매체가 함께 다룬 이슈일수록 중요. 정치적으로 중립적인 표현으로 요약."
    ),
    Channel.CULTURE: (
        "문화 채널: 지금 많은 사람이 이야기하는 트렌드(차트, 화제작, 검색어)를 "
        "대화 소재로 쓸 수 있게 요약. 화제성이 클수록 높은 점수."
    ),
    Channel.CANADA: (
        "캐나다/토론토 채널: 토론토 거주자의 일상(교통, 날씨, 생활비, 지역 정책)에 "
        "직접 영향을 주는 소식을 높게."
    ),
}

def build_batch_prompt(items: List[SummarizeInput], channel: Channel) -> str:
    payload = [
        {"index": i, "title": item.title, "body": (item.full_text or "")[:BODY_LIMIT]}
        for i, item in enumerate(items)
    ]
    return (
        f"{CHANNEL_RUBRICS.get(channel, '')}\n\n"
        f"항목 {len(items)}개:\n{json.dumps(payload, ensure_ascii=False)}\n\n"
        "각 index마다 하나씩 JSON 배열로 답하세요."
    )

def fallback_result(item: SummarizeInput) -> SummarizeResult:
    return SummarizeResult(id=item.id, summary=item.title, tags=[], score=FALLBACK_SCORE, tokens_used=0)

def _clean_tags(raw) -> List[str] | None:
    if not isinstance(raw, list):
        return None
    tags = []
    for tag in raw:
        if not isinstance(tag, str):
            return None
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]

def parse_batch_response(text: str, count: int) -> Dict[int, dict]:
    """
    Maps index -> {summary, tags, score} for every well-formed entry.
    Raises ParseError if the text is not a JSON array at all.
    """
    data = load_llm_json(text)
    if isinstance(data, dict):
        # Some models wrap the array in an object
        data = next((v for v in data.values() if isinstance(v, list)), None)
    if not isinstance(data, list):
        raise ParseError("LLM response is not a JSON array")

    parsed: Dict[int, dict] = {}
    for entry in data:
        if not isinstance(entry, dict):
            continue
        index = entry.get("index")
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < count:
            continue
        summary = entry.get("summary")
        score = entry.get("score")
        tags = _clean_tags(entry.get("tags", []))
        if not isinstance(summary, str) or not summary.strip():
            continue
        if isinstance(score, bool) or not isinstance(score, (int, float)) or tags is None:
            continue
        parsed.setdefault(index, {"summary": summary.strip(), "tags": tags, "score": clamp_score(score)})
    return parsed

class Summarizer:
    def __init__(self, llm: LLMService | None = None, batch_size: int | None = None,
                 policy: RetryPolicy | None = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.llm = llm or LLMService()
        self.batch_size = batch_size or settings.SUMMARY_BATCH_SIZE
        self.policy = policy or RetryPolicy(
            attempts=2,  # one retry
            timeout=settings.LLM_TIMEOUT,
            backoff=settings.LLM_RETRY_DELAY,
            max_backoff=settings.LLM_RETRY_DELAY,
            rate_limit_delay=settings.LLM_RATE_LIMIT_DELAY,
        )
        self.sleep = sleep

    async def summarize_batch(self, items: List[SummarizeInput],
                              score_overrides: Optional[Dict[str, float]] = None) -> List[SummarizeResult]:
        if not items:
            return []
        channel = items[0].channel
        prompt = build_batch_prompt(items, channel)

        try:
            response = await with_retry(
                lambda: self.llm.complete(SYSTEM_PROMPT, prompt),
                self.policy,
                retry_on=(Exception,),
                label=f"Summarize {channel.value} batch",
                sleep=self.sleep,
            )
        except ConfigurationError as e:
            if e.mandatory:
                raise
            logger.warning(f"⚠️ Summarizer unavailable for {channel.value}: {e}, using fallback")
            return [fallback_result(item) for item in items]
        except Exception as e:
            logger.warning(f"⚠️ Summarize call for {channel.value} failed after retry: {e}, using fallback")
            return [fallback_result(item) for item in items]

        try:
            parsed = parse_batch_response(response.text, len(items))
        except CortexError as e:
            logger.warning(f"⚠️ Unreadable summary response for {channel.value}: {e}, using fallback")
            return [fallback_result(item) for item in items]

        overrides = score_overrides or {}
        per_item_tokens = max(1, response.tokens_used // len(items))
        results = []
        for i, item in enumerate(items):
            entry = parsed.get(i)
            if entry is None:
                logger.debug(f"Summary for {item.id} missing from response, using fallback")
                results.append(fallback_result(item))
                continue
            score = overrides.get(item.id, SOURCE_SCORE_OVERRIDES.get(item.source, entry["score"]))
            results.append(SummarizeResult(
                id=item.id,
                summary=entry["summary"],
                tags=entry["tags"],
                score=score,
                tokens_used=per_item_tokens,
            ))
        missing = len(items) - len(parsed)
        if missing:
            logger.warning(f"Summary response for {channel.value} skipped {missing} of {len(items)} items")
        return results

    async def summarize_channel(self, items: List[SummarizeInput],
                                score_overrides: Optional[Dict[str, float]] = None) -> List[SummarizeResult]:
        results: List[SummarizeResult] = []
        for start in range(0, len(items), self.batch_size):
            results.extend(await self.summarize_batch(items[start:start + self.batch_size], score_overrides))
        return results

    async def summarize_channels(self, by_channel: Dict[Channel, List[SummarizeInput]],
                                 score_overrides: Optional[Dict[str, float]] = None) -> Dict[Channel, List[SummarizeResult]]:
        """One concurrent task per channel."""
        channels = [c for c, items in by_channel.items() if items]
        outputs = await asyncio.gather(
            *(self.summarize_channel(by_channel[c], score_overrides) for c in channels)
        )
        return dict(zip(channels, outputs))
