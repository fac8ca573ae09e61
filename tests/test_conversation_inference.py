"""
Tests for conversation inference and parsing of the model's answer.
"""

import pytest

from unimem.services.backends import BackendError
from unimem.services.conversation_inference import (EXTRACTION_PROMPT, ConversationInferenceError,
                                                    ConversationInferenceService, flatten_transcript,
                                                    parse_memory_statements)


class TestParseMemoryStatements:

    def test_plain_array(self):
        assert parse_memory_statements('["User likes tea", "User lives in Oslo"]') == ['User likes tea', 'User lives in Oslo']

    def test_fenced_array_with_prose(self):
        response = 'Here are the memories:\n```json\n["User likes tea"]\n```'

        assert parse_memory_statements(response) == ['User likes tea']

    def test_object_forms_and_duplicates(self):
        response = '{"memories": [{"memory": "User likes tea"}, "User likes tea", "  ", {"statement": "User is 30"}]}'

        assert parse_memory_statements(response) == ['User likes tea', 'User is 30']

    @pytest.mark.parametrize('response', ['no json here', '"just a string"', '{"other": 1}'])
    def test_invalid_shapes_raise(self, response):
        with pytest.raises(ConversationInferenceError):
            parse_memory_statements(response)


class TestFlattenTranscript:

    def test_skips_empty_turns(self):
        messages = [{'role': 'user', 'content': 'Hi'}, {'role': 'assistant', 'content': ''}, {'content': 'Bye'}]

        assert flatten_transcript(messages) == 'user: Hi\nuser: Bye'


class TestConversationInferenceService:

    async def test_sends_one_request_with_prompt_and_transcript(self, inference):
        inference.respond_with(['User likes tea'])
        service = ConversationInferenceService(inference)

        statements = await service.extract_memories([{'role': 'user', 'content': 'I like tea'}], 'model-x')

        assert statements == ['User likes tea']
        request = inference.requests[0]
        assert request['model'] == 'model-x'
        assert request['messages'][0] == {'role': 'system', 'content': EXTRACTION_PROMPT}
        assert 'user: I like tea' in request['messages'][1]['content']

    async def test_empty_conversation_skips_inference(self, inference):
        service = ConversationInferenceService(inference)

        assert await service.extract_memories([{'role': 'user', 'content': ' '}], 'model-x') == []
        assert inference.requests == []

    async def test_backend_failure_raises(self, inference):
        inference.error = BackendError('throttled')
        service = ConversationInferenceService(inference)

        with pytest.raises(ConversationInferenceError):
            await service.extract_memories([{'role': 'user', 'content': 'I like tea'}], 'model-x')
