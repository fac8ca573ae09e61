"""
Backend primitives consumed by the memory layer.

The memory services only talk to two protocols: a vector store that embeds text
server side and an inference service for chat completions. The AWS realization
backs them with OpenSearch (k-NN) plus Bedrock embeddings, and the Bedrock
Converse API. Blocking SDK calls run in worker threads.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..models.core import IndexInfo, IndexSpec, SearchHit, VectorRecord
from ..utils.bedrock_embed import BedrockEmbed, BedrockEmbedError
from ..utils.bedrock_llm import BedrockLLM, BedrockLLMError
from ..utils.config import BedrockEmbedConfig, BedrockLLMConfig, OpenSearchConfig
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, OpenSearchConflictError, OpenSearchError, OpenSearchNotFoundError

logger = get_logger(__name__)


class BackendError(Exception):
    """Transport or service failure in a backend primitive."""
    pass


class IndexConflictError(BackendError):
    """Raised by create_index when an index with the same name already exists."""
    pass


class RecordNotFoundError(BackendError):
    """Raised when a vector id does not exist in the index."""
    pass


@runtime_checkable
class VectorStoreBackend(Protocol):
    """Remote vector index service."""

    async def list_indexes(self) -> List[IndexInfo]:
        ...

    async def create_index(self, spec: IndexSpec) -> IndexInfo:
        ...

    async def upsert_text(self, index_id: str, text: str, model: str, memory_id: str, metadata: Dict[str, Any]) -> str:
        ...

    async def search_text(self,
                          index_id: str,
                          query: str,
                          model: str,
                          top_k: int,
                          filter: Optional[Dict[str, Any]] = None,
                          include_metadata: bool = True) -> List[SearchHit]:
        ...

    async def get_by_id(self, index_id: str, memory_id: str) -> VectorRecord:
        ...

    async def update_by_id(self, index_id: str, memory_id: str, metadata: Dict[str, Any]) -> None:
        ...

    async def delete_by_id(self, index_id: str, memory_id: str) -> None:
        ...


@runtime_checkable
class InferenceBackend(Protocol):
    """Remote text-inference service."""

    async def chat_complete(self, model: str, messages: List[Dict[str, str]]) -> str:
        ...


class OpenSearchVectorStore:
    """VectorStoreBackend over OpenSearch k-NN indexes with Bedrock embeddings."""

    def __init__(self, opensearch: OpenSearchClient, embed: BedrockEmbed):
        self.opensearch = opensearch
        self.embed = embed
        # index id -> dimension, so upserts and queries embed at the index's size
        self._dimensions: Dict[str, int] = {}

    @classmethod
    def from_config(cls, opensearch_config: OpenSearchConfig, embed_config: BedrockEmbedConfig) -> 'OpenSearchVectorStore':
        return cls(OpenSearchClient(opensearch_config), BedrockEmbed(embed_config))

    async def list_indexes(self) -> List[IndexInfo]:
        try:
            raw = await asyncio.to_thread(self.opensearch.list_indexes)
        except OpenSearchError as e:
            raise BackendError(str(e))

        indexes = []
        for item in raw:
            info = IndexInfo(id=item['id'], name=item['name'], dimension=item.get('dimension'), metadata=item.get('metadata') or {})
            if info.dimension:
                self._dimensions[info.id] = info.dimension
            indexes.append(info)
        return indexes

    async def create_index(self, spec: IndexSpec) -> IndexInfo:
        index_id = self.opensearch.index_id_for(spec.name)
        meta = {
            'metric': spec.metric,
            'vector_type': spec.vector_type,
            'cloud_provider': spec.cloud_provider,
            'region': spec.region,
            'delete_protection': spec.delete_protection,
            'metadata': spec.metadata
        }
        try:
            created = await asyncio.to_thread(self.opensearch.create_index, index_id, spec.name, spec.dimension, meta)
        except OpenSearchConflictError as e:
            raise IndexConflictError(str(e))
        except OpenSearchError as e:
            raise BackendError(str(e))

        self._dimensions[index_id] = spec.dimension
        return IndexInfo(id=created['id'], name=created['name'], dimension=created['dimension'], metadata=created['metadata'])

    async def _dimension_of(self, index_id: str) -> int:
        if index_id not in self._dimensions:
            await self.list_indexes()
        if index_id not in self._dimensions:
            raise BackendError(f'Unknown index: {index_id}')
        return self._dimensions[index_id]

    async def _embed(self, index_id: str, text: str, model: str, input_type: str) -> List[float]:
        dimension = await self._dimension_of(index_id)
        try:
            return await asyncio.to_thread(self.embed.embed, text, model, dimension, input_type)
        except BedrockEmbedError as e:
            raise BackendError(str(e))

    async def upsert_text(self, index_id: str, text: str, model: str, memory_id: str, metadata: Dict[str, Any]) -> str:
        embedding = await self._embed(index_id, text, model, 'search_document')
        document = {
            'id': memory_id,
            'user_id': metadata.get('user_id'),
            'memory_type': metadata.get('memory_type'),
            'text': text,
            'metadata': metadata,
            'embedding': embedding
        }
        try:
            existing = await asyncio.to_thread(self.opensearch.find_document, index_id, memory_id)
            doc_id = existing['_id'] if existing else None
            await asyncio.to_thread(self.opensearch.index_document, index_id, document, doc_id)
        except OpenSearchError as e:
            raise BackendError(str(e))
        return memory_id

    async def search_text(self,
                          index_id: str,
                          query: str,
                          model: str,
                          top_k: int,
                          filter: Optional[Dict[str, Any]] = None,
                          include_metadata: bool = True) -> List[SearchHit]:
        query_vector = await self._embed(index_id, query, model, 'search_query')
        try:
            results = await asyncio.to_thread(self.opensearch.vector_search, index_id, query_vector, top_k, filter)
        except OpenSearchError as e:
            raise BackendError(str(e))

        return [
            SearchHit(id=r['id'], score=r['score'], metadata=r['document'].get('metadata', {}) if include_metadata else {})
            for r in results
        ]

    async def get_by_id(self, index_id: str, memory_id: str) -> VectorRecord:
        try:
            found = await asyncio.to_thread(self.opensearch.find_document, index_id, memory_id)
        except OpenSearchError as e:
            raise BackendError(str(e))
        if not found:
            raise RecordNotFoundError(f'Vector {memory_id} not found in {index_id}')
        return VectorRecord(id=memory_id, metadata=found['document'].get('metadata', {}))

    async def update_by_id(self, index_id: str, memory_id: str, metadata: Dict[str, Any]) -> None:
        try:
            found = await asyncio.to_thread(self.opensearch.find_document, index_id, memory_id)
            if not found:
                raise RecordNotFoundError(f'Vector {memory_id} not found in {index_id}')
            fields = {'metadata': metadata, 'user_id': metadata.get('user_id'), 'memory_type': metadata.get('memory_type')}
            await asyncio.to_thread(self.opensearch.update_document, index_id, found['_id'], fields)
        except OpenSearchNotFoundError as e:
            raise RecordNotFoundError(str(e))
        except OpenSearchError as e:
            raise BackendError(str(e))

    async def delete_by_id(self, index_id: str, memory_id: str) -> None:
        try:
            found = await asyncio.to_thread(self.opensearch.find_document, index_id, memory_id)
            if found:
                await asyncio.to_thread(self.opensearch.delete_document, index_id, found['_id'])
        except OpenSearchError as e:
            raise BackendError(str(e))


class BedrockInference:
    """InferenceBackend over the Bedrock Converse API."""

    def __init__(self, llm: BedrockLLM):
        self.llm = llm

    @classmethod
    def from_config(cls, llm_config: BedrockLLMConfig) -> 'BedrockInference':
        return cls(BedrockLLM(llm_config))

    async def chat_complete(self, model: str, messages: List[Dict[str, str]]) -> str:
        try:
            return await asyncio.to_thread(self.llm.chat_complete, model, messages)
        except BedrockLLMError as e:
            raise BackendError(str(e))
