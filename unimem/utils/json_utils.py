"""
JSON utilities for parsing LLM responses.
"""

import json
from typing import Any


def clean_json_response(response: str) -> str:
    """Strip markdown code fences an LLM may wrap around JSON.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def load_json_response(response: str) -> Any:
    """Parse an LLM response as JSON, tolerating code fences and leading prose.

    Raises:
        json.JSONDecodeError: If no JSON value can be decoded
    """
    cleaned = clean_json_response(response)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        # Models sometimes prefix the payload with a sentence; retry from the first bracket
        starts = [i for i in (cleaned.find('['), cleaned.find('{')) if i >= 0]
        if not starts:
            raise
        value, _ = json.JSONDecoder().raw_decode(cleaned[min(starts):])
        return value
