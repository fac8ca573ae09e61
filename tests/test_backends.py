"""
Tests for the OpenSearch/Bedrock realizations of the backend protocols.
"""

from unittest.mock import Mock

import pytest

from unimem.models.core import IndexSpec
from unimem.services.backends import (BackendError, BedrockInference, IndexConflictError, InferenceBackend,
                                      OpenSearchVectorStore, RecordNotFoundError, VectorStoreBackend)
from unimem.utils.bedrock_embed import BedrockEmbedError
from unimem.utils.bedrock_llm import BedrockLLMError
from unimem.utils.opensearch_client import OpenSearchConflictError, OpenSearchError


@pytest.fixture
def opensearch():
    client = Mock()
    client.index_id_for.return_value = 'unimem-team-1234'
    client.list_indexes.return_value = [{'id': 'unimem-team-1234', 'name': 'team', 'dimension': 1024, 'metadata': {}}]
    return client


@pytest.fixture
def embed():
    client = Mock()
    client.embed.return_value = [0.1] * 1024
    return client


@pytest.fixture
def store(opensearch, embed):
    return OpenSearchVectorStore(opensearch, embed)


def _spec():
    return IndexSpec(name='team',
                     dimension=1024,
                     metric='cosine',
                     vector_type='dense',
                     cloud_provider='aws',
                     region='us-east-1',
                     metadata={'type': 'unified_memory_store'})


class TestOpenSearchVectorStore:

    def test_satisfies_protocol(self, store):
        assert isinstance(store, VectorStoreBackend)

    async def test_create_index(self, store, opensearch):
        opensearch.create_index.return_value = {
            'id': 'unimem-team-1234',
            'name': 'team',
            'dimension': 1024,
            'metadata': {
                'type': 'unified_memory_store'
            }
        }

        info = await store.create_index(_spec())

        args = opensearch.create_index.call_args.args
        assert args[:3] == ('unimem-team-1234', 'team', 1024)
        assert args[3]['metadata'] == {'type': 'unified_memory_store'}
        assert info.id == 'unimem-team-1234'

    async def test_create_conflict_is_mapped(self, store, opensearch):
        opensearch.create_index.side_effect = OpenSearchConflictError('exists')

        with pytest.raises(IndexConflictError):
            await store.create_index(_spec())

    async def test_upsert_new_record(self, store, opensearch, embed):
        opensearch.find_document.return_value = None

        await store.upsert_text('unimem-team-1234', 'Likes tea', 'amazon.titan-embed-text-v2:0', 'm1', {
            'user_id': 'alice',
            'memory_type': 'factual'
        })

        embed.embed.assert_called_once_with('Likes tea', 'amazon.titan-embed-text-v2:0', 1024, 'search_document')
        index_name, document, doc_id = opensearch.index_document.call_args.args
        assert index_name == 'unimem-team-1234'
        assert document['id'] == 'm1'
        assert document['user_id'] == 'alice'
        assert document['text'] == 'Likes tea'
        assert doc_id is None

    async def test_upsert_existing_record_replaces_document(self, store, opensearch):
        opensearch.find_document.return_value = {'_id': 'doc-7', 'document': {}}

        await store.upsert_text('unimem-team-1234', 'Likes coffee', 'amazon.titan-embed-text-v2:0', 'm1', {})

        assert opensearch.index_document.call_args.args[2] == 'doc-7'

    async def test_unknown_index_dimension(self, store, opensearch):
        opensearch.list_indexes.return_value = []

        with pytest.raises(BackendError):
            await store.upsert_text('unimem-other', 'x', 'amazon.titan-embed-text-v2:0', 'm1', {})

    async def test_embedding_failure_is_mapped(self, store, embed):
        embed.embed.side_effect = BedrockEmbedError('throttled')

        with pytest.raises(BackendError):
            await store.search_text('unimem-team-1234', 'tea', 'amazon.titan-embed-text-v2:0', 5)

    async def test_search_text(self, store, opensearch, embed):
        opensearch.vector_search.return_value = [{'id': 'm1', 'score': 0.8, 'document': {'metadata': {'user_id': 'alice'}}}]

        hits = await store.search_text('unimem-team-1234', 'tea', 'amazon.titan-embed-text-v2:0', 5, {'user_id': 'alice'})

        assert embed.embed.call_args.args[3] == 'search_query'
        opensearch.vector_search.assert_called_once_with('unimem-team-1234', [0.1] * 1024, 5, {'user_id': 'alice'})
        assert hits[0].id == 'm1'
        assert hits[0].score == 0.8
        assert hits[0].metadata == {'user_id': 'alice'}

    async def test_get_missing_record(self, store, opensearch):
        opensearch.find_document.return_value = None

        with pytest.raises(RecordNotFoundError):
            await store.get_by_id('unimem-team-1234', 'm1')

    async def test_update_by_id_writes_metadata_fields(self, store, opensearch):
        opensearch.find_document.return_value = {'_id': 'doc-7', 'document': {}}

        await store.update_by_id('unimem-team-1234', 'm1', {'user_id': 'alice', 'memory_type': 'working', 'access_count': 1})

        index_name, doc_id, fields = opensearch.update_document.call_args.args
        assert doc_id == 'doc-7'
        assert fields['memory_type'] == 'working'
        assert fields['metadata']['access_count'] == 1

    async def test_delete_missing_record_is_noop(self, store, opensearch):
        opensearch.find_document.return_value = None

        await store.delete_by_id('unimem-team-1234', 'm1')

        opensearch.delete_document.assert_not_called()

    async def test_transport_failure_is_mapped(self, store, opensearch):
        opensearch.find_document.side_effect = OpenSearchError('timeout')

        with pytest.raises(BackendError):
            await store.delete_by_id('unimem-team-1234', 'm1')


class TestBedrockInference:

    async def test_chat_complete(self):
        llm = Mock()
        llm.chat_complete.return_value = '["User likes tea"]'
        inference = BedrockInference(llm)

        assert isinstance(inference, InferenceBackend)
        assert await inference.chat_complete('model-x', [{'role': 'user', 'content': 'hi'}]) == '["User likes tea"]'
        llm.chat_complete.assert_called_once_with('model-x', [{'role': 'user', 'content': 'hi'}])

    async def test_failure_is_mapped(self):
        llm = Mock()
        llm.chat_complete.side_effect = BedrockLLMError('denied')

        with pytest.raises(BackendError):
            await BedrockInference(llm).chat_complete('model-x', [{'role': 'user', 'content': 'hi'}])
