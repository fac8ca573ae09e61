"""
Memory Record Mapper: translate between MemoryRecord and vector-store metadata.
"""

import uuid
from typing import Any, Dict, Optional

from ..models.core import MemoryConfiguration, MemoryRecord, MemoryType, UpsertPayload
from ..utils.timestamp_utils import to_iso

# Fields callers can never overwrite through metadata
PROTECTED_FIELDS = ('user_id', 'content')

DEFAULT_IMPORTANCE = 1.0


def generate_memory_id() -> str:
    return str(uuid.uuid4())


def _caller_fields(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (metadata or {}).items() if k not in PROTECTED_FIELDS}


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _checked_memory_type(value: Any) -> str:
    """Validate a memory type coming from caller metadata.

    Raises:
        ValueError: If the value is not a MemoryType
    """
    try:
        return MemoryType(value).value
    except ValueError:
        raise ValueError(f"Invalid memory_type '{value}', expected one of {', '.join(t.value for t in MemoryType)}")


def _as_memory_type(value: Any) -> MemoryType:
    try:
        return MemoryType(value)
    except ValueError:
        return MemoryType.FACTUAL


class MemoryRecordMapper:
    """Build upsert payloads and read stored metadata back as MemoryRecords."""

    def build_upsert(self,
                     content: str,
                     user_id: str,
                     memory_type: MemoryType,
                     configuration: MemoryConfiguration,
                     metadata: Optional[Dict[str, Any]] = None,
                     memory_id: Optional[str] = None) -> UpsertPayload:
        """
        Build the payload for a new memory.

        System fields are set first and caller metadata is merged on top, except for
        PROTECTED_FIELDS. A memory_type given in metadata must be a MemoryType.

        Raises:
            ValueError: If metadata carries an unknown memory_type
        """
        now = to_iso()
        stored = {
            'user_id': user_id,
            'memory_type': memory_type.value,
            'content': content,
            'embedding_model': configuration.embedding_model,
            'index_name': configuration.index_name,
            'created_at': now,
            'updated_at': now,
            'importance_score': DEFAULT_IMPORTANCE,
            'access_count': 0,
        }
        stored.update(_caller_fields(metadata))
        stored['memory_type'] = _checked_memory_type(stored['memory_type'])

        return UpsertPayload(text=content,
                             model=configuration.embedding_model,
                             id=memory_id or generate_memory_id(),
                             metadata=stored)

    def build_update(self,
                     existing: Dict[str, Any],
                     content: str,
                     configuration: MemoryConfiguration,
                     metadata: Optional[Dict[str, Any]] = None,
                     importance_score: Optional[float] = None) -> Dict[str, Any]:
        """
        Merge an update into the full existing metadata.

        Fields the caller does not mention are kept; `user_id` never changes.
        """
        updated = dict(existing)
        updated.update({
            'content': content,
            'updated_at': to_iso(),
            'embedding_model': configuration.embedding_model,
        })
        updated.update(_caller_fields(metadata))
        if importance_score is not None:
            updated['importance_score'] = float(importance_score)
        if metadata and 'memory_type' in metadata:
            updated['memory_type'] = _checked_memory_type(metadata['memory_type'])
        else:
            updated['memory_type'] = _as_memory_type(updated.get('memory_type')).value
        return updated

    def with_access(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Copy of metadata with the access counter bumped."""
        updated = dict(metadata)
        updated['access_count'] = _as_int(metadata.get('access_count'), 0) + 1
        updated['last_accessed_at'] = to_iso()
        return updated

    def to_record(self, memory_id: str, metadata: Optional[Dict[str, Any]], score: Optional[float] = None) -> MemoryRecord:
        """Read stored metadata as a MemoryRecord, defaulting fields legacy records may lack."""
        metadata = dict(metadata or {})
        return MemoryRecord(id=memory_id,
                            content=str(metadata.get('content', '')),
                            memory_type=_as_memory_type(metadata.get('memory_type')),
                            user_id=str(metadata.get('user_id', '')),
                            metadata=metadata,
                            created_at=str(metadata.get('created_at') or ''),
                            updated_at=str(metadata.get('updated_at') or metadata.get('created_at') or ''),
                            importance_score=_as_float(metadata.get('importance_score'), DEFAULT_IMPORTANCE),
                            access_count=_as_int(metadata.get('access_count'), 0),
                            score=score)
