"""
JSON extraction from free-text model replies.

Two strategies, tried in order:
1. Direct parse, when the reply itself starts with '{' or '['
2. Parse of the first fenced code block (```json ... ``` or ``` ... ```)
"""

import json
import re
from typing import Any, Dict, Optional

from ..errors import PlanValidationError

_FENCED_BLOCK = re.compile(r"```[a-zA-Z0-9_-]*\s*\n?(.*?)```", re.DOTALL)


def _parse_direct(text: str) -> Optional[Any]:
    if not text.startswith(("{", "[")):
        return None
    return json.loads(text)


def _parse_fenced(text: str) -> Optional[Any]:
    match = _FENCED_BLOCK.search(text)
    if not match:
        return None
    return json.loads(match.group(1).strip())


def parse_json_reply(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Raises:
        PlanValidationError: If no strategy yields a JSON object
    """
    stripped = (text or "").strip()
    try:
        parsed = _parse_direct(stripped)
        if parsed is None:
            parsed = _parse_fenced(stripped)
    except json.JSONDecodeError as e:
        raise PlanValidationError("The model returned malformed JSON.", details=str(e))

    if parsed is None:
        raise PlanValidationError("The model did not return JSON.", details=stripped[:200])
    if not isinstance(parsed, dict):
        raise PlanValidationError("The model returned JSON that is not an object.")
    return parsed
