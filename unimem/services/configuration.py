"""
Active memory configuration owned by a single memory service instance.
"""

from typing import Dict, Optional

from ..models.core import MemoryConfiguration
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Output dimensionality of the supported embedding models
MODEL_DIMENSIONS: Dict[str, int] = {
    'amazon.titan-embed-text-v2:0': 1024,
    'amazon.titan-embed-text-v1': 1536,
    'amazon.titan-embed-g1-text-02': 1536,
    'cohere.embed-english-v3': 1024,
    'cohere.embed-multilingual-v3': 1024,
    'cohere.embed-v4:0': 1536,
}

# Fallback for models missing from the table. This is a default, not a claim that the
# model really produces 1024 dimensions; add the model to MODEL_DIMENSIONS instead of
# relying on it.
DEFAULT_EMBEDDING_DIMENSION = 1024


class MemoryConfigurationError(Exception):
    """Missing or inconsistent memory configuration."""
    pass


def get_embedding_dimension(model: str) -> int:
    """Look up the output dimension of an embedding model."""
    dimension = MODEL_DIMENSIONS.get(model)
    if dimension is None:
        logger.warning(f'Unknown embedding model {model}, assuming {DEFAULT_EMBEDDING_DIMENSION} dimensions')
        return DEFAULT_EMBEDDING_DIMENSION
    return dimension


def _require(name: str, value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        raise MemoryConfigurationError(f'{name} must be provided explicitly')
    return str(value).strip()


class ConfigurationState:
    """Mutable configuration: models, logical store name and cloud placement.

    Every value must be supplied at construction. There is no reset to defaults,
    since an embedding model change implies a different index dimension.
    """

    def __init__(self,
                 embedding_model: str,
                 inference_model: str,
                 index_name: str,
                 cloud_provider: str,
                 region: str,
                 delete_protection: bool = False):
        self.embedding_model = _require('embedding_model', embedding_model)
        self.inference_model = _require('inference_model', inference_model)
        self.index_name = _require('index_name', index_name)
        self.cloud_provider = _require('cloud_provider', cloud_provider)
        self.region = _require('region', region)
        self.delete_protection = delete_protection
        self.embedding_dimension = get_embedding_dimension(self.embedding_model)

    def snapshot(self) -> MemoryConfiguration:
        return MemoryConfiguration(embedding_model=self.embedding_model,
                                   inference_model=self.inference_model,
                                   index_name=self.index_name,
                                   cloud_provider=self.cloud_provider,
                                   region=self.region,
                                   embedding_dimension=self.embedding_dimension,
                                   delete_protection=self.delete_protection)

    def switch(self,
               embedding_model: Optional[str] = None,
               inference_model: Optional[str] = None,
               index_name: Optional[str] = None,
               cloud_provider: Optional[str] = None,
               region: Optional[str] = None) -> MemoryConfiguration:
        """
        Update any subset of the configuration; omitted fields are left unchanged.

        A new embedding model recomputes the active dimension immediately but does not
        touch indexes that already exist. A new index name is resolved lazily on first use.

        Returns:
            Snapshot of the configuration after the switch
        """
        if embedding_model is not None:
            self.embedding_model = _require('embedding_model', embedding_model)
            self.embedding_dimension = get_embedding_dimension(self.embedding_model)
            logger.info(f'Switched embedding model to {self.embedding_model} ({self.embedding_dimension} dimensions)')

        if inference_model is not None:
            self.inference_model = _require('inference_model', inference_model)
            logger.info(f'Switched inference model to {self.inference_model}')

        if index_name is not None:
            self.index_name = _require('index_name', index_name)
            logger.info(f'Switched memory store to {self.index_name}')

        if cloud_provider is not None or region is not None:
            if cloud_provider is not None:
                self.cloud_provider = _require('cloud_provider', cloud_provider)
            if region is not None:
                self.region = _require('region', region)
            logger.info(f'Switched cloud placement to {self.cloud_provider}/{self.region}')

        return self.snapshot()
