"""
Tests for JSON, timestamp and configuration helpers.
"""

import json
from datetime import datetime, timezone

import pytest

from unimem.utils.config import load_config
from unimem.utils.json_utils import clean_json_response, load_json_response
from unimem.utils.timestamp_utils import EPOCH, parse_timestamp, to_iso


class TestJsonUtils:

    def test_clean_strips_fences(self):
        assert clean_json_response('```json\n["a"]\n```') == '["a"]'
        assert clean_json_response('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_load_tolerates_leading_prose(self):
        assert load_json_response('Sure! {"memories": ["a"]} Hope that helps.') == {'memories': ['a']}

    def test_load_without_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            load_json_response('nothing to see')


class TestTimestampUtils:

    def test_iso_round_trip_is_utc(self):
        moment = datetime(2025, 1, 15, 12, 30, tzinfo=timezone.utc)

        assert parse_timestamp(to_iso(moment)) == moment

    def test_naive_datetimes_are_utc(self):
        assert to_iso(datetime(2025, 1, 15, 12, 30)) == '2025-01-15T12:30:00+00:00'

    @pytest.mark.parametrize('value', ['2025-01-15T12:30:00Z', '2025-01-15T12:30:00', 1736944200])
    def test_parse_formats(self, value):
        assert parse_timestamp(value) == datetime(2025, 1, 15, 12, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize('value', [None, '', 'yesterday'])
    def test_unparseable_values(self, value):
        assert parse_timestamp(value) is None

    def test_epoch(self):
        assert parse_timestamp(0) == EPOCH


class TestLoadConfig:

    def test_memory_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv('MEMORY_EMBEDDING_MODEL', 'cohere.embed-v4:0')
        monkeypatch.setenv('MEMORY_INDEX_NAME', 'team')
        monkeypatch.setenv('MEMORY_DELETE_PROTECTION', 'yes')
        monkeypatch.setenv('MEMORY_WORKING_TTL_HOURS', '0.5')

        config = load_config()

        assert config.memory.embedding_model == 'cohere.embed-v4:0'
        assert config.memory.index_name == 'team'
        assert config.memory.delete_protection is True
        assert config.memory.working_memory_ttl_hours == 0.5

    def test_identity_settings_have_no_defaults(self, monkeypatch):
        for name in ('MEMORY_EMBEDDING_MODEL', 'MEMORY_INFERENCE_MODEL', 'MEMORY_INDEX_NAME', 'MEMORY_CLOUD_PROVIDER',
                     'MEMORY_REGION'):
            monkeypatch.delenv(name, raising=False)

        memory = load_config().memory

        assert memory.embedding_model is None
        assert memory.index_name is None
        assert memory.default_threshold == 0.3
