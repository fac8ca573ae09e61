"""
Conversation Inference: extract memorable facts from dialogue turns.
"""

import json
from typing import Dict, List

from ..utils.json_utils import load_json_response
from ..utils.logging_config import get_logger
from .backends import BackendError, InferenceBackend

logger = get_logger(__name__)

EXTRACTION_PROMPT = """You are a memory extraction system. Read the conversation and extract the facts worth remembering about the user for future conversations.

Extract:
- Preferences, likes and dislikes
- Personal details (name, location, occupation, relationships)
- Plans, goals and commitments
- Important events the user mentions

Rules:
- Write each memory as one short, self-contained statement in the third person (e.g. "User prefers window seats")
- Only extract what the user states or clearly confirms; ignore the assistant's own suggestions
- Do not repeat the same fact twice
- Return an empty array if nothing is worth remembering

Respond with a JSON array of strings only:
```json
["statement 1", "statement 2"]
```"""  # noqa: E501


class ConversationInferenceError(Exception):
    """Inference call failed or returned output that could not be parsed."""
    pass


def flatten_transcript(messages: List[Dict[str, str]]) -> str:
    """Render dialogue turns as `role: content` lines, skipping empty turns."""
    lines = []
    for message in messages:
        content = (message.get('content') or '').strip()
        if content:
            lines.append(f"{message.get('role', 'user')}: {content}")
    return '\n'.join(lines)


def parse_memory_statements(response: str) -> List[str]:
    """
    Parse the model's answer into memory statements.

    Accepts a JSON array of strings, an array of {"memory": ...} objects or an object
    with a "memories" array.

    Raises:
        ConversationInferenceError: If the response is not in one of those shapes
    """
    try:
        data = load_json_response(response)
    except (json.JSONDecodeError, ValueError) as e:
        raise ConversationInferenceError(f'Inference response is not valid JSON: {e}')

    if isinstance(data, dict):
        data = data.get('memories', data.get('facts'))
    if not isinstance(data, list):
        raise ConversationInferenceError(f'Expected a JSON array of memories, got {type(data).__name__}')

    statements = []
    for item in data:
        if isinstance(item, dict):
            item = item.get('memory') or item.get('statement') or item.get('content')
        if isinstance(item, str) and item.strip() and item.strip() not in statements:
            statements.append(item.strip())
    return statements


class ConversationInferenceService:
    """Summarize a conversation into memory statements with the configured inference model."""

    def __init__(self, inference: InferenceBackend):
        self.inference = inference

    async def extract_memories(self, messages: List[Dict[str, str]], inference_model: str) -> List[str]:
        """
        Send one extraction request for the whole conversation.

        Args:
            messages: Dialogue turns with 'role' and 'content' keys
            inference_model: Model used for the extraction

        Returns:
            Zero or more memory statements

        Raises:
            ConversationInferenceError: If the call fails or its output cannot be parsed
        """
        transcript = flatten_transcript(messages)
        if not transcript:
            return []

        request = [{
            'role': 'system',
            'content': EXTRACTION_PROMPT
        }, {
            'role': 'user',
            'content': f'Extract memories from this conversation:\n\n{transcript}'
        }]

        try:
            response = await self.inference.chat_complete(inference_model, request)
        except BackendError as e:
            logger.warning(f'Memory extraction with {inference_model} failed: {e}')
            raise ConversationInferenceError(f'Inference call failed: {e}')

        statements = parse_memory_statements(response)
        logger.debug(f'Extracted {len(statements)} memories from {len(messages)} messages')
        return statements
