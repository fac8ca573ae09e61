"""
Shared fixtures: in-memory vector store and inference backends for the memory service.
"""

import copy
import json
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from unimem.models.core import IndexInfo, IndexSpec, SearchHit, VectorRecord
from unimem.services.backends import BackendError, IndexConflictError, RecordNotFoundError
from unimem.services.memory_management import MemoryManagementService

EMBEDDING_MODEL = 'amazon.titan-embed-text-v2:0'
INFERENCE_MODEL = 'anthropic.claude-3-haiku-20240307-v1:0'


def _tokens(text: str) -> set:
    return set(re.findall(r'[a-z0-9]+', text.lower()))


def word_overlap(query: str, text: str) -> float:
    """Share of query words present in the text; stands in for cosine similarity."""
    query_tokens = _tokens(query)
    if not query_tokens:
        return 0.0
    return len(query_tokens & _tokens(text)) / len(query_tokens)


class FakeVectorStore:
    """VectorStoreBackend kept in dictionaries.

    Operations named in `fail` raise BackendError, as do deletes of ids in
    `undeletable`. With `leak_other_users` the user
    filter is ignored, like a backend that does not honour metadata filters.
    """

    def __init__(self):
        self.indexes: Dict[str, IndexInfo] = {}
        self.records: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.created_specs: List[IndexSpec] = []
        self.calls = defaultdict(int)
        self.fail = set()
        self.conflict_on_create = False
        self.leak_other_users = False
        self.undeletable = set()

    def _call(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation in self.fail:
            raise BackendError(f'{operation} unavailable')

    def add_index(self, name: str, dimension: int, metadata: Optional[Dict[str, Any]] = None) -> IndexInfo:
        index_id = f'idx-{len(self.indexes) + 1}'
        info = IndexInfo(id=index_id, name=name, dimension=dimension, metadata=metadata or {})
        self.indexes[index_id] = info
        self.records[index_id] = {}
        return info

    def stored(self, memory_id: str) -> Optional[Dict[str, Any]]:
        for records in self.records.values():
            if memory_id in records:
                return records[memory_id]
        return None

    async def list_indexes(self) -> List[IndexInfo]:
        self._call('list_indexes')
        return [copy.deepcopy(info) for info in self.indexes.values()]

    async def create_index(self, spec: IndexSpec) -> IndexInfo:
        self._call('create_index')
        if self.conflict_on_create:
            # another writer created the same store first
            self.add_index(spec.name, spec.dimension, dict(spec.metadata))
            raise IndexConflictError(f'Index {spec.name} already exists')
        self.created_specs.append(spec)
        return copy.deepcopy(self.add_index(spec.name, spec.dimension, dict(spec.metadata)))

    async def upsert_text(self, index_id: str, text: str, model: str, memory_id: str, metadata: Dict[str, Any]) -> str:
        self._call('upsert_text')
        self.records[index_id][memory_id] = {'text': text, 'model': model, 'metadata': copy.deepcopy(metadata)}
        return memory_id

    async def search_text(self,
                          index_id: str,
                          query: str,
                          model: str,
                          top_k: int,
                          filter: Optional[Dict[str, Any]] = None,
                          include_metadata: bool = True) -> List[SearchHit]:
        self._call('search_text')
        hits = []
        for memory_id, record in self.records.get(index_id, {}).items():
            if filter and not self.leak_other_users:
                if any(record['metadata'].get(key) != value for key, value in filter.items()):
                    continue
            hits.append(
                SearchHit(id=memory_id,
                          score=word_overlap(query, record['text']),
                          metadata=copy.deepcopy(record['metadata']) if include_metadata else {}))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    async def get_by_id(self, index_id: str, memory_id: str) -> VectorRecord:
        self._call('get_by_id')
        record = self.records.get(index_id, {}).get(memory_id)
        if record is None:
            raise RecordNotFoundError(f'Vector {memory_id} not found')
        return VectorRecord(id=memory_id, metadata=copy.deepcopy(record['metadata']))

    async def update_by_id(self, index_id: str, memory_id: str, metadata: Dict[str, Any]) -> None:
        self._call('update_by_id')
        record = self.records.get(index_id, {}).get(memory_id)
        if record is None:
            raise RecordNotFoundError(f'Vector {memory_id} not found')
        record['metadata'] = copy.deepcopy(metadata)

    async def delete_by_id(self, index_id: str, memory_id: str) -> None:
        self._call('delete_by_id')
        if memory_id in self.undeletable:
            raise BackendError(f'Vector {memory_id} is locked')
        self.records.get(index_id, {}).pop(memory_id, None)


class FakeInference:
    """InferenceBackend returning a canned answer and recording every request."""

    def __init__(self, response: Any = None):
        self.response = json.dumps(response if response is not None else [])
        self.requests: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def respond_with(self, statements: Any) -> None:
        self.response = statements if isinstance(statements, str) else json.dumps(statements)

    async def chat_complete(self, model: str, messages: List[Dict[str, str]]) -> str:
        self.requests.append({'model': model, 'messages': messages})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def service(vector_store, inference):
    """Memory service over the in-memory backends."""
    return MemoryManagementService(vector_store=vector_store,
                                   inference=inference,
                                   embedding_model=EMBEDDING_MODEL,
                                   inference_model=INFERENCE_MODEL,
                                   index_name='test-memories',
                                   cloud_provider='aws',
                                   region='us-east-1')
