"""
Configuration management for AWS services and memory settings.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    retry_attempts: int
    retry_delay: float


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    service: str  # 'aoss' for serverless collections, 'es' for managed domains
    index_prefix: str


@dataclass
class MemoryConfig:
    """Configuration for memory management.

    The identity fields (models, index name, placement) have no defaults: different
    embedding models imply different index dimensions, so they must be set explicitly.
    """
    embedding_model: Optional[str]
    inference_model: Optional[str]
    index_name: Optional[str]
    cloud_provider: Optional[str]
    region: Optional[str]
    delete_protection: bool
    working_memory_ttl_hours: float
    default_search_limit: int
    default_threshold: float


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    opensearch: OpenSearchConfig
    memory: MemoryConfig
    mcp: MCPConfig


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '2048')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    # Vector search configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'aoss'),
                                         index_prefix=os.getenv('OPENSEARCH_INDEX_PREFIX', 'unimem-'))

    # Memory configuration, identity fields deliberately without defaults
    memory_config = MemoryConfig(embedding_model=os.getenv('MEMORY_EMBEDDING_MODEL'),
                                 inference_model=os.getenv('MEMORY_INFERENCE_MODEL'),
                                 index_name=os.getenv('MEMORY_INDEX_NAME'),
                                 cloud_provider=os.getenv('MEMORY_CLOUD_PROVIDER'),
                                 region=os.getenv('MEMORY_REGION'),
                                 delete_protection=_env_flag('MEMORY_DELETE_PROTECTION'),
                                 working_memory_ttl_hours=float(os.getenv('MEMORY_WORKING_TTL_HOURS', '2')),
                                 default_search_limit=int(os.getenv('MEMORY_SEARCH_LIMIT', '100')),
                                 default_threshold=float(os.getenv('MEMORY_SEARCH_THRESHOLD', '0.3')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     opensearch=opensearch_config,
                     memory=memory_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
