"""
Index Resolver: maps logical memory-store names to backing vector indexes.
"""

from typing import Dict, List, Optional

from ..models.core import IndexInfo, IndexSpec, MemoryConfiguration
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import to_iso
from .backends import BackendError, IndexConflictError, VectorStoreBackend
from .configuration import MemoryConfigurationError

logger = get_logger(__name__)

MEMORY_STORE_TYPE = 'unified_memory_store'


class MemoryStoreError(Exception):
    """A memory store could not be found or created."""
    pass


class IndexResolver:
    """Resolve store names to index ids, creating missing indexes on first use.

    Resolved indexes are cached for the lifetime of the resolver. Two concurrent
    resolutions of the same uncached name may both try to create the index; the loser
    gets the backend's conflict response and adopts the winner's index.
    """

    def __init__(self, vector_store: VectorStoreBackend):
        self.vector_store = vector_store
        self._cache: Dict[str, IndexInfo] = {}

    def invalidate(self, store_name: str) -> None:
        self._cache.pop(store_name, None)

    async def resolve(self, store_name: str, configuration: MemoryConfiguration) -> IndexInfo:
        """
        Return the backing index for a store, creating it if it does not exist.

        Args:
            store_name: Logical memory-store name
            configuration: Configuration snapshot of the calling operation

        Returns:
            IndexInfo of the backing index

        Raises:
            MemoryConfigurationError: If the index was built for a different dimension
            MemoryStoreError: If the index cannot be listed or created
        """
        info = self._cache.get(store_name)
        if info is None:
            info = await self._find(store_name)
            if info is None:
                info = await self._create(store_name, configuration)
            self._cache[store_name] = info

        self._check_dimension(info, configuration)
        return info

    async def list_indexes(self) -> List[IndexInfo]:
        try:
            return await self.vector_store.list_indexes()
        except BackendError as e:
            raise MemoryStoreError(f'Failed to list memory indexes: {e}')

    async def _find(self, store_name: str) -> Optional[IndexInfo]:
        for index in await self.list_indexes():
            if index.name == store_name:
                logger.debug(f'Found existing index {index.id} for memory store {store_name}')
                return index
        return None

    async def _create(self, store_name: str, configuration: MemoryConfiguration) -> IndexInfo:
        logger.info(f"Memory store '{store_name}' not found, creating index with {configuration.embedding_model} "
                    f'({configuration.embedding_dimension} dimensions) on {configuration.cloud_provider}/{configuration.region}')
        spec = IndexSpec(name=store_name,
                         dimension=configuration.embedding_dimension,
                         metric='cosine',
                         vector_type='dense',
                         cloud_provider=configuration.cloud_provider,
                         region=configuration.region,
                         metadata={
                             'type': MEMORY_STORE_TYPE,
                             'embedding_model': configuration.embedding_model,
                             'dimension': configuration.embedding_dimension,
                             'created_at': to_iso(),
                             'description': f'Unified memory store: {store_name}',
                             'cloud_config': configuration.cloud_config
                         },
                         delete_protection=configuration.delete_protection)
        try:
            info = await self.vector_store.create_index(spec)
        except IndexConflictError:
            logger.info(f'Index for memory store {store_name} was created concurrently, reusing it')
            info = await self._find(store_name)
            if info is None:
                raise MemoryStoreError(f"Memory store '{store_name}' reported as existing but could not be found")
            return info
        except BackendError as e:
            logger.error(f"Failed to create memory index '{store_name}': {e}")
            raise MemoryStoreError(f"Failed to create memory index '{store_name}': {e}")

        logger.info(f'Created memory index {info.id} for store {store_name}')
        if info.dimension is None:
            info.dimension = configuration.embedding_dimension
        return info

    @staticmethod
    def _check_dimension(info: IndexInfo, configuration: MemoryConfiguration) -> None:
        dimension = info.dimension or info.metadata.get('dimension')
        if dimension and int(dimension) != configuration.embedding_dimension:
            raise MemoryConfigurationError(
                f"Memory store '{info.name}' was created with {dimension}-dimension embeddings "
                f"({info.metadata.get('embedding_model', 'unknown model')}), but {configuration.embedding_model} "
                f'produces {configuration.embedding_dimension}; switch back or use a different store name')
