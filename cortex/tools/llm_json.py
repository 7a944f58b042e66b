import json
import re
from typing import Any

from cortex.models.errors import ParseError

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

def strip_code_fences(text: str) -> str:
    """Returns the body of the first markdown code block, or the text itself."""
    match = _FENCE.search(text or "")
    return (match.group(1) if match else (text or "")).strip()

def fix_json(text: str) -> str:
    # Trailing commas before } or ]
    return re.sub(r',(\s*[}\]])', r'\1', text)

def load_llm_json(text: str) -> Any:
    candidate = strip_code_fences(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(fix_json(candidate))
    except json.JSONDecodeError as e:
        raise ParseError(f"LLM response is not valid JSON: {e}") from e
