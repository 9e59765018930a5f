import json
import re
from typing import Any, Dict, List, Optional, Union

from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json|JSON)?\s*|\s*```$")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from text, handling common LLM formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Prose before or after the JSON payload
    - Trailing commas before a closing brace or bracket

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = _FENCE_PATTERN.sub("", text.strip()).strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    embedded = _decode_first_value(cleaned_text)
    if embedded is not None:
        return embedded

    repaired = _TRAILING_COMMA_PATTERN.sub(r"\1", cleaned_text)
    if repaired != cleaned_text:
        try:
            return json.loads(repaired)
        except json.JSONDecodeError:
            embedded = _decode_first_value(repaired)
            if embedded is not None:
                return embedded

    LOGGER.error("Failed to parse JSON from model output", extra={"preview": cleaned_text[:200]})
    return None


def _decode_first_value(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Decode the first complete JSON object or array found in text."""
    decoder = json.JSONDecoder()
    for idx, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            continue
        if isinstance(value, (dict, list)):
            return value
    return None


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse text expected to hold a single JSON object.

    A top-level list whose first element is an object is unwrapped.

    Args:
        text: The text containing JSON

    Returns:
        The parsed object, or None when no object could be recovered
    """
    parsed = parse_json_safely(text)
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict):
        return parsed[0]
    return None
