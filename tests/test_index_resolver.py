"""
Tests for IndexResolver: caching, lazy creation and the create-if-absent race.
"""

import pytest

from conftest import EMBEDDING_MODEL
from unimem.models.core import MemoryConfiguration
from unimem.services.configuration import MemoryConfigurationError
from unimem.services.index_resolver import MEMORY_STORE_TYPE, IndexResolver, MemoryStoreError


@pytest.fixture
def configuration():
    return MemoryConfiguration(embedding_model=EMBEDDING_MODEL,
                               inference_model='model',
                               index_name='team-memories',
                               cloud_provider='aws',
                               region='us-west-2',
                               embedding_dimension=1024,
                               delete_protection=True)


@pytest.fixture
def resolver(vector_store):
    return IndexResolver(vector_store)


class TestResolve:

    async def test_existing_index_is_found_and_cached(self, resolver, vector_store, configuration):
        existing = vector_store.add_index('team-memories', 1024, {'type': MEMORY_STORE_TYPE})

        first = await resolver.resolve('team-memories', configuration)
        second = await resolver.resolve('team-memories', configuration)

        assert first.id == existing.id
        assert second.id == existing.id
        assert vector_store.calls['list_indexes'] == 1
        assert vector_store.calls['create_index'] == 0
        assert resolver._cache['team-memories'].id == existing.id

    async def test_missing_index_is_created_with_store_metadata(self, resolver, vector_store, configuration):
        info = await resolver.resolve('team-memories', configuration)

        spec = vector_store.created_specs[0]
        assert info.name == 'team-memories'
        assert spec.dimension == 1024
        assert spec.metric == 'cosine'
        assert spec.vector_type == 'dense'
        assert spec.cloud_provider == 'aws'
        assert spec.region == 'us-west-2'
        assert spec.delete_protection is True
        assert spec.metadata['type'] == MEMORY_STORE_TYPE
        assert spec.metadata['embedding_model'] == EMBEDDING_MODEL
        assert spec.metadata['cloud_config'] == {'cloud_provider': 'aws', 'region': 'us-west-2', 'index_type': 'serverless'}

    async def test_conflict_adopts_concurrently_created_index(self, resolver, vector_store, configuration):
        vector_store.conflict_on_create = True

        info = await resolver.resolve('team-memories', configuration)

        assert info.name == 'team-memories'
        assert vector_store.calls['list_indexes'] == 2
        assert len(vector_store.indexes) == 1

    async def test_create_failure_raises_store_error(self, resolver, vector_store, configuration):
        vector_store.fail.add('create_index')

        with pytest.raises(MemoryStoreError):
            await resolver.resolve('team-memories', configuration)
        assert 'team-memories' not in resolver._cache

    async def test_list_failure_raises_store_error(self, resolver, vector_store, configuration):
        vector_store.fail.add('list_indexes')

        with pytest.raises(MemoryStoreError):
            await resolver.resolve('team-memories', configuration)

    async def test_dimension_mismatch_raises_configuration_error(self, resolver, vector_store, configuration):
        vector_store.add_index('team-memories', 1536, {'embedding_model': 'cohere.embed-v4:0'})

        with pytest.raises(MemoryConfigurationError, match='1536'):
            await resolver.resolve('team-memories', configuration)

    async def test_invalidate_forces_lookup(self, resolver, vector_store, configuration):
        await resolver.resolve('team-memories', configuration)

        resolver.invalidate('team-memories')
        await resolver.resolve('team-memories', configuration)

        assert vector_store.calls['list_indexes'] == 2
        assert vector_store.calls['create_index'] == 1
