"""
Memory Management Service for unified, user-scoped memory operations.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from ..models.core import (AddResult, DeleteAllResult, IndexInfo, MemoryConfiguration, MemoryRecord, MemoryStats,
                           MemoryType, OperationResult, SearchHit)
from ..utils.config import AppConfig
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import EPOCH, parse_timestamp, utc_now
from .backends import (BackendError, BedrockInference, InferenceBackend, OpenSearchVectorStore, RecordNotFoundError,
                       VectorStoreBackend)
from .configuration import ConfigurationState, MemoryConfigurationError
from .conversation_inference import ConversationInferenceError, ConversationInferenceService, flatten_transcript
from .index_resolver import MEMORY_STORE_TYPE, IndexResolver, MemoryStoreError
from .record_mapper import MemoryRecordMapper

logger = get_logger(__name__)

# Placeholder query for listing: an empty query has no useful embedding
GET_ALL_QUERY = 'memory'
MAX_SEARCH_LIMIT = 1000
DEFAULT_SEARCH_LIMIT = 100
DEFAULT_THRESHOLD = 0.3
DEFAULT_WORKING_MEMORY_TTL = timedelta(hours=2)
SORT_FIELDS = ('created_at', 'updated_at', 'importance_score', 'access_count')

Messages = Union[str, List[Dict[str, str]]]


class MemoryManagementError(Exception):
    """Custom exception for memory management errors."""
    pass


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')


class MemoryManagementService:
    """Unified service for adding, searching, updating and expiring user memories.

    Writes (add, update, delete) raise MemoryManagementError when the backend fails.
    Reads (search, get_all, get and everything built on them) log backend failures
    and return an empty result instead. Configuration errors are always raised.

    Each operation captures a configuration snapshot when it starts, so switching
    configuration does not affect operations already in flight.
    """

    def __init__(self,
                 vector_store: VectorStoreBackend,
                 inference: InferenceBackend,
                 embedding_model: str,
                 inference_model: str,
                 index_name: str,
                 cloud_provider: str,
                 region: str,
                 delete_protection: bool = False,
                 working_memory_ttl: timedelta = DEFAULT_WORKING_MEMORY_TTL,
                 default_limit: int = DEFAULT_SEARCH_LIMIT,
                 default_threshold: float = DEFAULT_THRESHOLD):
        """Initialize the memory management service.

        Raises:
            MemoryConfigurationError: If any model, store name or placement value is missing
        """
        self.configuration = ConfigurationState(embedding_model=embedding_model,
                                                inference_model=inference_model,
                                                index_name=index_name,
                                                cloud_provider=cloud_provider,
                                                region=region,
                                                delete_protection=delete_protection)
        self.vector_store = vector_store
        self.resolver = IndexResolver(vector_store)
        self.mapper = MemoryRecordMapper()
        self.conversation_inference = ConversationInferenceService(inference)
        self.working_memory_ttl = working_memory_ttl
        self.default_limit = default_limit
        self.default_threshold = default_threshold

        logger.info(f'Initialized MemoryManagementService for store {index_name} with {embedding_model}')

    @classmethod
    def from_config(cls, app_config: Optional[AppConfig] = None) -> 'MemoryManagementService':
        """Build a service on OpenSearch and Bedrock from application configuration.

        Raises:
            MemoryConfigurationError: If a MEMORY_* identity setting is missing
        """
        if app_config is None:
            from ..utils.config import config as app_config

        memory = app_config.memory
        required = {
            'MEMORY_EMBEDDING_MODEL': memory.embedding_model,
            'MEMORY_INFERENCE_MODEL': memory.inference_model,
            'MEMORY_INDEX_NAME': memory.index_name,
            'MEMORY_CLOUD_PROVIDER': memory.cloud_provider,
            'MEMORY_REGION': memory.region
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise MemoryConfigurationError(f"Missing memory configuration: {', '.join(missing)}")

        return cls(vector_store=OpenSearchVectorStore.from_config(app_config.opensearch, app_config.bedrock_embed),
                   inference=BedrockInference.from_config(app_config.bedrock_llm),
                   embedding_model=memory.embedding_model,
                   inference_model=memory.inference_model,
                   index_name=memory.index_name,
                   cloud_provider=memory.cloud_provider,
                   region=memory.region,
                   delete_protection=memory.delete_protection,
                   working_memory_ttl=timedelta(hours=memory.working_memory_ttl_hours),
                   default_limit=memory.default_search_limit,
                   default_threshold=memory.default_threshold)

    # Writes

    async def add(self,
                  messages: Messages,
                  user_id: str,
                  metadata: Optional[Dict[str, Any]] = None,
                  infer: bool = True,
                  memory_type: Optional[MemoryType] = None) -> List[AddResult]:
        """Store memories from direct content or from a conversation.

        Args:
            messages: A string stored as one memory, or a list of {'role', 'content'} turns
            user_id: Owner of the new memories
            metadata: Extra metadata merged over the system fields (user_id cannot be overridden)
            infer: For conversations, extract facts with the inference model instead of
                storing each turn verbatim. Ignored for direct content.
            memory_type: Defaults to factual for direct content and episodic for conversations

        Returns:
            One AddResult per stored memory

        Raises:
            MemoryManagementError: If the store cannot be resolved or a write fails
        """
        _require_user(user_id)
        configuration = self.configuration.snapshot()

        if isinstance(messages, str):
            if not messages.strip():
                raise ValueError('Memory content must not be empty')
            result = await self._store(messages, user_id, MemoryType(memory_type or MemoryType.FACTUAL), metadata,
                                       configuration)
            return [result]

        return await self._add_conversation(messages, user_id, metadata, infer,
                                            MemoryType(memory_type or MemoryType.EPISODIC), configuration)

    async def _add_conversation(self, messages: List[Dict[str, str]], user_id: str, metadata: Optional[Dict[str, Any]],
                                infer: bool, memory_type: MemoryType,
                                configuration: MemoryConfiguration) -> List[AddResult]:
        if not messages:
            logger.warning('Empty messages provided for memory add')
            return []

        if not infer:
            results = []
            for message in messages:
                content = message.get('content') or ''
                if content.strip():
                    results.append(await self._store(content, user_id, memory_type, metadata, configuration))
            return results

        try:
            statements = await self.conversation_inference.extract_memories(messages, configuration.inference_model)
        except ConversationInferenceError as e:
            transcript = flatten_transcript(messages)
            if not transcript:
                return []
            logger.warning(f'Memory inference failed, storing raw transcript for user {user_id}: {e}')
            fallback_metadata = {**(metadata or {}), 'inference_fallback': True}
            return [await self._store(transcript, user_id, memory_type, fallback_metadata, configuration)]

        results = []
        for statement in statements:
            results.append(await self._store(statement, user_id, memory_type, metadata, configuration))
        logger.debug(f'Stored {len(results)} inferred memories for user {user_id}')
        return results

    async def _store(self, content: str, user_id: str, memory_type: MemoryType, metadata: Optional[Dict[str, Any]],
                     configuration: MemoryConfiguration) -> AddResult:
        index = await self._resolve_for_write(configuration)
        payload = self.mapper.build_upsert(content, user_id, memory_type, configuration, metadata)
        try:
            await self.vector_store.upsert_text(index.id, payload.text, payload.model, payload.id, payload.metadata)
        except BackendError as e:
            logger.error(f'Backend error during memory add: {e}')
            raise MemoryManagementError(f'Memory add failed: {e}')

        logger.debug(f'Added memory {payload.id} for user {user_id}')
        return AddResult(id=payload.id, memory=content)

    async def update(self,
                     memory_id: str,
                     user_id: str,
                     content: str,
                     metadata: Optional[Dict[str, Any]] = None,
                     importance_score: Optional[float] = None) -> OperationResult:
        """Replace a memory's content and merge metadata into what is stored.

        The memory is re-embedded with the currently active embedding model, which may
        differ from the model that embedded it originally.

        Returns:
            OperationResult; success is False when the memory does not exist for this user

        Raises:
            MemoryManagementError: If the backend fails
        """
        _require_user(user_id)
        if not content or not content.strip():
            raise ValueError('Memory content must not be empty')
        configuration = self.configuration.snapshot()
        index = await self._resolve_for_write(configuration)

        try:
            current = await self._fetch_owned(index.id, memory_id, user_id)
            if current is None:
                return OperationResult(success=False, message=f'Memory {memory_id} not found')

            updated = self.mapper.build_update(current.metadata, content, configuration, metadata, importance_score)
            await self.vector_store.upsert_text(index.id, content, configuration.embedding_model, memory_id, updated)
        except BackendError as e:
            logger.error(f'Backend error during memory update: {e}')
            raise MemoryManagementError(f'Memory update failed: {e}')

        logger.debug(f'Updated memory {memory_id} for user {user_id}')
        return OperationResult(success=True, message=f'Memory {memory_id} updated successfully')

    async def delete(self, memory_id: str, user_id: str) -> OperationResult:
        """Delete one memory owned by the user.

        Returns:
            OperationResult; success is False when the memory does not exist for this user

        Raises:
            MemoryManagementError: If the backend fails
        """
        _require_user(user_id)
        if not memory_id or not memory_id.strip():
            logger.warning('Empty memory ID provided for deletion')
            return OperationResult(success=False, message='Memory ID is required')

        configuration = self.configuration.snapshot()
        index = await self._resolve_for_write(configuration)

        try:
            current = await self._fetch_owned(index.id, memory_id, user_id)
            if current is None:
                return OperationResult(success=False, message=f'Memory {memory_id} not found')
            await self.vector_store.delete_by_id(index.id, memory_id)
        except BackendError as e:
            logger.error(f'Backend error during memory deletion: {e}')
            raise MemoryManagementError(f'Memory deletion failed: {e}')

        logger.debug(f'Deleted memory {memory_id}')
        return OperationResult(success=True, message=f'Memory {memory_id} deleted successfully')

    async def delete_all(self, user_id: str) -> DeleteAllResult:
        """Delete every memory of a user, one at a time.

        Best effort: failures are recorded and skipped, nothing is rolled back.
        """
        _require_user(user_id)
        result = DeleteAllResult(deleted=0)
        attempted = set()

        # get_all is capped at MAX_SEARCH_LIMIT, so keep listing until nothing new comes back
        while True:
            pending = [m for m in await self.get_all(user_id, MAX_SEARCH_LIMIT) if m.id not in attempted]
            if not pending:
                break
            for memory in pending:
                attempted.add(memory.id)
                try:
                    outcome = await self.delete(memory.id, user_id)
                except MemoryManagementError as e:
                    logger.warning(f'Failed to delete memory {memory.id}: {e}')
                    result.failed.append(memory.id)
                    continue
                if outcome.success:
                    result.deleted += 1

        logger.info(f'delete_all for user {user_id}: {result.message}')
        return result

    async def cleanup_working_memory(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Delete working memories older than the working-memory TTL.

        A memory is expired when its created_at is strictly before `now - ttl`; one
        created exactly at the cutoff is kept. Never runs on its own.

        Args:
            user_id: Owner of the memories
            now: Reference time (defaults to the current UTC time)

        Returns:
            Number of memories deleted
        """
        now = parse_timestamp(now) if now is not None else utc_now()
        cutoff = now - self.working_memory_ttl

        cleaned = 0
        for memory in await self.get_memories_by_type(user_id, MemoryType.WORKING, MAX_SEARCH_LIMIT):
            created_at = parse_timestamp(memory.created_at)
            if created_at is None or created_at >= cutoff:
                continue
            try:
                outcome = await self.delete(memory.id, user_id)
            except MemoryManagementError as e:
                logger.warning(f'Failed to delete expired memory {memory.id}: {e}')
                continue
            if outcome.success:
                cleaned += 1

        if cleaned:
            logger.info(f'Cleaned up {cleaned} expired working memories for user {user_id}')
        else:
            logger.debug('No expired working memories found for cleanup')
        return cleaned

    # Reads

    async def search(self,
                     query: str,
                     user_id: str,
                     limit: Optional[int] = None,
                     threshold: Optional[float] = None) -> List[MemoryRecord]:
        """Semantic search over one user's memories.

        Args:
            query: Natural-language query; blank queries list memories instead
            user_id: Only this user's memories are returned
            limit: Maximum number of results, clamped to 1..1000
            threshold: Minimum cosine similarity; 0 or less returns every hit

        Returns:
            Matching memories ordered by score, empty if the backend is unavailable
        """
        _require_user(user_id)
        configuration = self.configuration.snapshot()
        top_k = max(1, min(MAX_SEARCH_LIMIT, self.default_limit if limit is None else limit))
        threshold = self.default_threshold if threshold is None else threshold
        search_query = query.strip() if query and query.strip() else GET_ALL_QUERY

        try:
            index = await self.resolver.resolve(configuration.index_name, configuration)
            hits = await self.vector_store.search_text(index.id,
                                                       search_query,
                                                       configuration.embedding_model,
                                                       top_k,
                                                       filter={'user_id': user_id},
                                                       include_metadata=True)
        except (MemoryStoreError, BackendError) as e:
            logger.error(f'Memory search failed for user {user_id}: {e}')
            return []

        results = []
        for hit in hits:
            if hit.metadata.get('user_id') != user_id:
                logger.warning(f'Dropping search hit {hit.id} owned by another user')
                continue
            if threshold > 0 and hit.score < threshold:
                continue
            metadata = await self._increment_access(index.id, hit)
            results.append(self.mapper.to_record(hit.id, metadata, score=hit.score))

        results.sort(key=lambda record: record.score, reverse=True)
        logger.debug(f'Search returned {len(results)} memories for user {user_id}')
        return results

    async def get_all(self, user_id: str, limit: Optional[int] = None) -> List[MemoryRecord]:
        """List a user's memories: a search with the placeholder query and no threshold."""
        return await self.search(GET_ALL_QUERY, user_id, limit=limit, threshold=0.0)

    async def get(self, memory_id: str, user_id: str) -> Optional[MemoryRecord]:
        """Fetch one memory by id.

        Returns:
            The memory, or None if it does not exist, belongs to another user, or the
            backend is unavailable
        """
        _require_user(user_id)
        configuration = self.configuration.snapshot()
        try:
            index = await self.resolver.resolve(configuration.index_name, configuration)
            return await self._fetch_owned(index.id, memory_id, user_id)
        except (MemoryStoreError, BackendError) as e:
            logger.error(f'Memory get failed for {memory_id}: {e}')
            return None

    async def get_memories_by_type(self,
                                   user_id: str,
                                   memory_type: Union[MemoryType, str],
                                   limit: int = DEFAULT_SEARCH_LIMIT) -> List[MemoryRecord]:
        """List a user's memories of one type, filtered client side."""
        memory_type = MemoryType(memory_type)
        memories = await self.get_all(user_id, MAX_SEARCH_LIMIT)
        return [m for m in memories if m.memory_type == memory_type][:limit]

    async def list_all_memories(self,
                                user_id: str,
                                limit: int = DEFAULT_SEARCH_LIMIT,
                                sort_by: str = 'created_at',
                                ascending: bool = False) -> List[MemoryRecord]:
        """List a user's memories sorted by a timestamp, importance or access count.

        Raises:
            ValueError: If sort_by is not one of SORT_FIELDS
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"Cannot sort by '{sort_by}', expected one of {', '.join(SORT_FIELDS)}")

        memories = await self.get_all(user_id, limit)
        if sort_by in ('created_at', 'updated_at'):
            def key(record):
                return parse_timestamp(getattr(record, sort_by)) or EPOCH
        else:
            def key(record):
                return getattr(record, sort_by)
        return sorted(memories, key=key, reverse=not ascending)

    async def get_stats(self, user_id: str) -> MemoryStats:
        """Count a user's memories per type and find the latest update."""
        stats = MemoryStats()
        latest = None
        for memory in await self.get_all(user_id, MAX_SEARCH_LIMIT):
            stats.total_memories += 1
            field_name = f'{memory.memory_type.value}_count'
            setattr(stats, field_name, getattr(stats, field_name) + 1)

            updated_at = parse_timestamp(memory.updated_at)
            if updated_at is not None and (latest is None or updated_at > latest):
                latest = updated_at
                stats.last_updated = memory.updated_at
        return stats

    async def list_all_users(self, limit: int = MAX_SEARCH_LIMIT) -> List[str]:
        """Administrative scan of the user ids present in the active store.

        Unlike every other read this search is not filtered by user.
        """
        configuration = self.configuration.snapshot()
        try:
            index = await self.resolver.resolve(configuration.index_name, configuration)
            hits = await self.vector_store.search_text(index.id,
                                                       'user',
                                                       configuration.embedding_model,
                                                       max(1, min(MAX_SEARCH_LIMIT, limit)),
                                                       filter=None,
                                                       include_metadata=True)
        except (MemoryStoreError, BackendError) as e:
            logger.error(f'Listing users failed: {e}')
            return []
        return sorted({hit.metadata['user_id'] for hit in hits if hit.metadata.get('user_id')})

    async def list_available_indexes(self) -> List[str]:
        """Names of the backing indexes tagged as unified memory stores."""
        try:
            indexes = await self.resolver.list_indexes()
        except MemoryStoreError as e:
            logger.error(f'Listing memory stores failed: {e}')
            return []
        return sorted({index.name for index in indexes if index.metadata.get('type') == MEMORY_STORE_TYPE})

    # Configuration

    def switch_configuration(self,
                             embedding_model: Optional[str] = None,
                             inference_model: Optional[str] = None,
                             index_name: Optional[str] = None,
                             cloud_provider: Optional[str] = None,
                             region: Optional[str] = None) -> MemoryConfiguration:
        """Change any subset of the active configuration. The new store is resolved lazily."""
        previous_index = self.configuration.index_name
        snapshot = self.configuration.switch(embedding_model=embedding_model,
                                             inference_model=inference_model,
                                             index_name=index_name,
                                             cloud_provider=cloud_provider,
                                             region=region)
        if snapshot.index_name != previous_index:
            self.resolver.invalidate(previous_index)
        return snapshot

    def get_current_configuration(self) -> MemoryConfiguration:
        return self.configuration.snapshot()

    async def switch_index(self, index_name: str) -> bool:
        """Resolve (creating if needed) a memory store now and make it the active one.

        Returns:
            True on success, False if the store could not be resolved
        """
        configuration = replace(self.configuration.snapshot(), index_name=index_name)
        try:
            index = await self.resolver.resolve(index_name, configuration)
        except (MemoryStoreError, MemoryConfigurationError) as e:
            logger.error(f"Failed to switch to memory store '{index_name}': {e}")
            return False

        self.switch_configuration(index_name=index_name)
        # switching invalidates only the previous store, the new entry stays cached
        logger.info(f'Switched to memory store {index_name} ({index.id})')
        return True

    # Internals

    async def _resolve_for_write(self, configuration: MemoryConfiguration) -> IndexInfo:
        try:
            return await self.resolver.resolve(configuration.index_name, configuration)
        except MemoryStoreError as e:
            logger.error(f'Memory store unavailable: {e}')
            raise MemoryManagementError(str(e))

    async def _fetch_owned(self, index_id: str, memory_id: str, user_id: str) -> Optional[MemoryRecord]:
        """Fetch by id; another user's memory is reported exactly like a missing one."""
        try:
            vector = await self.vector_store.get_by_id(index_id, memory_id)
        except RecordNotFoundError:
            return None
        if vector.metadata.get('user_id') != user_id:
            logger.debug(f'Memory {memory_id} not visible to user {user_id}')
            return None
        return self.mapper.to_record(vector.id, vector.metadata)

    async def _increment_access(self, index_id: str, hit: SearchHit) -> Dict[str, Any]:
        """Bump a hit's access count; failures are logged and otherwise ignored."""
        try:
            current = await self.vector_store.get_by_id(index_id, hit.id)
            updated = self.mapper.with_access(current.metadata)
            await self.vector_store.update_by_id(index_id, hit.id, updated)
            return updated
        except BackendError as e:
            logger.debug(f'Access count update failed for {hit.id}: {e}')
            return hit.metadata
