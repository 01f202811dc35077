"""Parsing of JSON payloads out of free-form model responses."""

import json
import re

import structlog

logger = structlog.get_logger(__name__)


class ResponseParseError(Exception):
    """Model output could not be turned into the expected JSON object."""

    pass


def extract_json_object(text: str) -> str | None:
    """Find the first balanced JSON object in text.

    Handles cases where the model outputs reasoning before the JSON
    or wraps it in other content.

    Args:
        text: Text that may contain JSON.

    Returns:
        Extracted JSON string or None.
    """
    brace_count = 0
    start_idx = None
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        # Braces inside string literals do not count
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == "{":
            if brace_count == 0:
                start_idx = i
            brace_count += 1
        elif char == "}" and brace_count > 0:
            brace_count -= 1
            if brace_count == 0 and start_idx is not None:
                return text[start_idx:i + 1]

    return None


def _clean_json_string(text: str) -> str:
    """Strip BOMs and trailing commas, a common model mistake."""
    text = text.strip('\ufeff\u200b\u200c\u200d')
    return re.sub(r",(\s*[}\]])", r"\1", text)


def parse_json_response(response: str) -> dict:
    """Parse a JSON object from a model response.

    Args:
        response: Raw model response string.

    Returns:
        Parsed JSON dict.

    Raises:
        ResponseParseError: If no JSON object can be recovered.
    """
    if not response or not response.strip():
        raise ResponseParseError("Empty response from model")

    text = response.strip()

    # Strategy 1: markdown code block
    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text, re.IGNORECASE)
    if match and match.group(1).strip().startswith("{"):
        text = match.group(1).strip()

    # Strategy 2: direct parse
    try:
        parsed = json.loads(_clean_json_string(text))
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError as e:
        logger.debug("direct_parse_failed", error=str(e))

    # Strategy 3: brace matching
    extracted = extract_json_object(text)
    if extracted:
        try:
            parsed = json.loads(_clean_json_string(extracted))
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError as e:
            logger.debug("extracted_parse_failed", error=str(e))

    logger.warning(
        "json_parse_error",
        response_preview=text[:300],
    )
    raise ResponseParseError(f"Failed to parse model JSON response. Preview: {text[:150]}")
