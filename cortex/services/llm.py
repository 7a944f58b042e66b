import ollama
import httpx
from cortex.config import settings
from cortex.services.logger import logger
from cortex.models.errors import RateLimited, ConfigurationError
from cortex.models.items import LLMResponse

class LLMService:
    """
    Thin wrapper over the Ollama chat API.

    Retries live with the callers, which know what a failure should fall back to.
    A throttled response is surfaced as RateLimited so callers can wait longer.
    """
    def __init__(self, client: ollama.AsyncClient | None = None, model: str | None = None):
        self.model = model or settings.OLLAMA_MODEL
        self.client = client or ollama.AsyncClient(host=settings.OLLAMA_BASE_URL, timeout=settings.LLM_TIMEOUT)

    async def complete(self, system: str, prompt: str, temperature: float = 0.1) -> LLMResponse:
        if not self.model:
            raise ConfigurationError("OLLAMA_MODEL is not set", mandatory=True)
        try:
            response = await self.client.chat(model=self.model, messages=[
                {'role': 'system', 'content': system},
                {'role': 'user', 'content': prompt},
            ], options={'temperature': temperature})
        except ollama.ResponseError as e:
            if e.status_code == 429:
                raise RateLimited(f"LLM throttled: {e.error}") from e
            logger.error(f"LLM request failed ({e.status_code}): {e.error}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"LLM transport failed: {e}")
            raise

        content = response['message']['content'] or ""
        tokens = (response.get('prompt_eval_count') or 0) + (response.get('eval_count') or 0)
        return LLMResponse(text=content, tokens_used=tokens)
