"""
Tests for ConfigurationState and the embedding dimension table.
"""

import dataclasses

import pytest

from unimem.services.configuration import (DEFAULT_EMBEDDING_DIMENSION, ConfigurationState, MemoryConfigurationError,
                                           get_embedding_dimension)


@pytest.fixture
def state():
    return ConfigurationState(embedding_model='amazon.titan-embed-text-v2:0',
                              inference_model='anthropic.claude-3-haiku-20240307-v1:0',
                              index_name='memories',
                              cloud_provider='aws',
                              region='us-east-1')


class TestEmbeddingDimension:

    @pytest.mark.parametrize('model,dimension', [
        ('amazon.titan-embed-text-v2:0', 1024),
        ('amazon.titan-embed-text-v1', 1536),
        ('cohere.embed-english-v3', 1024),
        ('cohere.embed-v4:0', 1536),
    ])
    def test_known_models(self, model, dimension):
        assert get_embedding_dimension(model) == dimension

    def test_unknown_model_falls_back(self):
        assert get_embedding_dimension('someone.new-model') == DEFAULT_EMBEDDING_DIMENSION


class TestConfigurationState:

    @pytest.mark.parametrize('field', ['embedding_model', 'inference_model', 'index_name', 'cloud_provider', 'region'])
    def test_every_identity_value_is_required(self, field):
        values = {
            'embedding_model': 'amazon.titan-embed-text-v2:0',
            'inference_model': 'model',
            'index_name': 'memories',
            'cloud_provider': 'aws',
            'region': 'us-east-1'
        }
        values[field] = None

        with pytest.raises(MemoryConfigurationError, match=field):
            ConfigurationState(**values)

    def test_snapshot_is_frozen(self, state):
        snapshot = state.snapshot()

        assert snapshot.embedding_dimension == 1024
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.index_name = 'other'

    def test_switch_updates_only_given_fields(self, state):
        snapshot = state.switch(embedding_model='cohere.embed-v4:0')

        assert snapshot.embedding_model == 'cohere.embed-v4:0'
        assert snapshot.embedding_dimension == 1536
        assert snapshot.index_name == 'memories'
        assert snapshot.region == 'us-east-1'

    def test_switch_rejects_blank_values(self, state):
        with pytest.raises(MemoryConfigurationError):
            state.switch(index_name='  ')
        assert state.index_name == 'memories'

    def test_to_dict_includes_cloud_config(self, state):
        data = state.switch(region='eu-central-1').to_dict()

        assert data['cloud_config'] == {'cloud_provider': 'aws', 'region': 'eu-central-1', 'index_type': 'serverless'}
        assert data['index_name'] == 'memories'
