import asyncio
import json
from typing import Awaitable, Callable, List

from cortex.config import settings
from cortex.models.errors import ConfigurationError, CortexError
from cortex.services.llm import LLMService
from cortex.services.logger import logger
from cortex.services.retry import RetryPolicy, with_retry
from cortex.tools.llm_json import load_llm_json

MAX_PICKS = 2
EDITORIAL_SCORE = 0.9

SYSTEM_PROMPT = (
    "당신은 뉴스 편집장입니다. 헤드라인 목록에서 오늘 꼭 알아야 할 뉴스를 최대 2개 고르세요.\n"
    "기준:\n"
    "1. 연예/가십보다 정책, 경제, 외교처럼 구조적 파급력이 큰 뉴스\n"
    "2. 여러 매체에서 반복 보도된 이슈에 가중치\n"
    "3. 특정 정치 성향에 치우치지 않는 주제\n"
    'JSON만 출력하세요: {"selected": [0, 3], "reason": "..."}'
)

def default_picks(count: int) -> List[int]:
    return list(range(min(MAX_PICKS, count)))

def parse_selection(text: str, count: int) -> List[int]:
    """Valid, distinct indices from {"selected": [...]}. Raises CortexError when malformed."""
    data = load_llm_json(text)
    selected = data.get("selected") if isinstance(data, dict) else None
    if not isinstance(selected, list):
        raise CortexError("selection response has no 'selected' list")
    picks: List[int] = []
    for value in selected:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < count:
            continue
        if value not in picks:
            picks.append(value)
    if not picks:
        raise CortexError("selection response named no usable index")
    return picks[:MAX_PICKS]

class EditorialSelector:
    """Picks at most two world headlines worth the reader's attention."""

    def __init__(self, llm: LLMService | None = None, policy: RetryPolicy | None = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.llm = llm or LLMService()
        self.policy = policy or RetryPolicy(
            attempts=2,
            timeout=settings.LLM_TIMEOUT,
            backoff=settings.LLM_RETRY_DELAY,
            max_backoff=settings.LLM_RETRY_DELAY,
            rate_limit_delay=settings.LLM_RATE_LIMIT_DELAY,
        )
        self.sleep = sleep

    async def select(self, headlines: List[str]) -> List[int]:
        if not headlines:
            return []

        prompt = json.dumps([{"index": i, "headline": h} for i, h in enumerate(headlines)], ensure_ascii=False)
        try:
            response = await with_retry(
                lambda: self.llm.complete(SYSTEM_PROMPT, prompt),
                self.policy,
                retry_on=(Exception,),
                label="Editorial selection",
                sleep=self.sleep,
            )
            picks = parse_selection(response.text, len(headlines))
        except ConfigurationError as e:
            if e.mandatory:
                raise
            logger.warning(f"Editorial selection unavailable: {e}, taking the first {MAX_PICKS}")
            return default_picks(len(headlines))
        except Exception as e:
            logger.warning(f"Editorial selection failed: {e}, taking the first {MAX_PICKS}")
            return default_picks(len(headlines))

        logger.info(f"📰 Editorial picks: {picks}")
        return picks
