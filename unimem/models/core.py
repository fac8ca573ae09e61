"""
Core data models for the unified memory store.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MemoryType(str, Enum):
    """Kinds of memory a record can hold."""
    FACTUAL = 'factual'  # Long-term structured knowledge (preferences, attributes)
    EPISODIC = 'episodic'  # Specific past conversations or events
    WORKING = 'working'  # Short-term context for the current session
    SEMANTIC = 'semantic'  # Generalized knowledge derived from patterns


@dataclass
class MemoryRecord:
    """A single user-scoped memory as seen by callers.

    `metadata` holds the full stored metadata map, system-managed fields included.
    `score` is only set on records returned by a similarity search.
    """
    id: str
    content: str
    memory_type: MemoryType
    user_id: str
    metadata: Dict[str, Any]
    created_at: str
    updated_at: str
    importance_score: float = 1.0
    access_count: int = 0
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['memory_type'] = self.memory_type.value
        return data


@dataclass
class AddResult:
    """Outcome of storing one memory."""
    id: str
    memory: str
    event: str = 'ADD'


@dataclass
class OperationResult:
    """Outcome of a single-record write such as update or delete."""
    success: bool
    message: str


@dataclass
class DeleteAllResult:
    """Outcome of a best-effort bulk delete."""
    deleted: int
    failed: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.failed:
            return f'Deleted {self.deleted} memories, {len(self.failed)} could not be deleted'
        return f'Deleted {self.deleted} memories'


@dataclass
class MemoryStats:
    """Per-user aggregate counts."""
    total_memories: int = 0
    factual_count: int = 0
    episodic_count: int = 0
    working_count: int = 0
    semantic_count: int = 0
    last_updated: Optional[str] = None


@dataclass(frozen=True)
class MemoryConfiguration:
    """Immutable snapshot of the active memory configuration."""
    embedding_model: str
    inference_model: str
    index_name: str
    cloud_provider: str
    region: str
    embedding_dimension: int
    delete_protection: bool = False

    @property
    def cloud_config(self) -> Dict[str, str]:
        return {'cloud_provider': self.cloud_provider, 'region': self.region, 'index_type': 'serverless'}

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['cloud_config'] = self.cloud_config
        return data


@dataclass
class IndexSpec:
    """Parameters for creating a backing vector index."""
    name: str
    dimension: int
    metric: str
    vector_type: str
    cloud_provider: str
    region: str
    metadata: Dict[str, Any]
    delete_protection: bool = False


@dataclass
class IndexInfo:
    """A backing vector index as reported by the vector store."""
    id: str
    name: str
    dimension: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """One similarity-search hit; score is a cosine similarity."""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorRecord:
    """A stored vector's id and metadata (the embedding itself is never returned)."""
    id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UpsertPayload:
    """Text-upsert request for a vector store that embeds server side."""
    text: str
    model: str
    id: str
    metadata: Dict[str, Any]
