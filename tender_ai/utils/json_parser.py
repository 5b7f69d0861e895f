import json
import re
from typing import Any, Dict, List, Union

from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from text, handling common LLM formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing whitespace
    - Trailing prose after the first complete value

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text[7:]
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text[3:]

    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text[:-3]

    cleaned_text = cleaned_text.strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.debug(f"Initial JSON parse failed: {e}, attempting repairs...")

    # First complete value, ignoring anything after it
    decoder = json.JSONDecoder()
    for match in re.finditer(r"[\[{]", cleaned_text):
        try:
            obj, _ = decoder.raw_decode(cleaned_text, match.start())
            return obj
        except json.JSONDecodeError:
            continue

    LOGGER.warning(f"Failed to parse JSON: {cleaned_text[:100]!r}")
    return None


def parse_json_field(value: Any, default: Any) -> Any:
    """Decode a JSON-encoded tool argument, falling back to ``default``.

    Oracles sometimes send nested structures as JSON strings and sometimes
    as already-decoded values; empty strings mean "absent".

    Args:
        value: Raw argument value
        default: Returned when the value is absent, unparsable, or of a
            different container type than ``default``

    Returns:
        Decoded value or default
    """
    if value is None or value == "":
        return default
    if isinstance(value, str):
        value = parse_json_safely(value)
        if value is None:
            return default
    if default is not None and not isinstance(value, type(default)):
        return default
    return value
