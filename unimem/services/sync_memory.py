"""
Blocking facade over MemoryManagementService for scripts and synchronous callers.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..models.core import (AddResult, DeleteAllResult, MemoryConfiguration, MemoryRecord, MemoryStats, MemoryType,
                           OperationResult)
from ..utils.config import AppConfig
from .memory_management import DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT, MemoryManagementService, Messages


class SyncMemoryManagementService:
    """Run each MemoryManagementService operation to completion with asyncio.run.

    Must not be used from inside a running event loop; use the async service there.
    """

    def __init__(self, service: MemoryManagementService):
        self.service = service

    @classmethod
    def from_config(cls, app_config: Optional[AppConfig] = None) -> 'SyncMemoryManagementService':
        return cls(MemoryManagementService.from_config(app_config))

    def add(self,
            messages: Messages,
            user_id: str,
            metadata: Optional[Dict[str, Any]] = None,
            infer: bool = True,
            memory_type: Optional[MemoryType] = None) -> List[AddResult]:
        return asyncio.run(self.service.add(messages, user_id, metadata, infer, memory_type))

    def search(self,
               query: str,
               user_id: str,
               limit: Optional[int] = None,
               threshold: Optional[float] = None) -> List[MemoryRecord]:
        return asyncio.run(self.service.search(query, user_id, limit, threshold))

    def get_all(self, user_id: str, limit: Optional[int] = None) -> List[MemoryRecord]:
        return asyncio.run(self.service.get_all(user_id, limit))

    def get(self, memory_id: str, user_id: str) -> Optional[MemoryRecord]:
        return asyncio.run(self.service.get(memory_id, user_id))

    def update(self,
               memory_id: str,
               user_id: str,
               content: str,
               metadata: Optional[Dict[str, Any]] = None,
               importance_score: Optional[float] = None) -> OperationResult:
        return asyncio.run(self.service.update(memory_id, user_id, content, metadata, importance_score))

    def delete(self, memory_id: str, user_id: str) -> OperationResult:
        return asyncio.run(self.service.delete(memory_id, user_id))

    def delete_all(self, user_id: str) -> DeleteAllResult:
        return asyncio.run(self.service.delete_all(user_id))

    def get_memories_by_type(self,
                             user_id: str,
                             memory_type: Union[MemoryType, str],
                             limit: int = DEFAULT_SEARCH_LIMIT) -> List[MemoryRecord]:
        return asyncio.run(self.service.get_memories_by_type(user_id, memory_type, limit))

    def cleanup_working_memory(self, user_id: str, now: Optional[datetime] = None) -> int:
        return asyncio.run(self.service.cleanup_working_memory(user_id, now))

    def list_all_memories(self,
                          user_id: str,
                          limit: int = DEFAULT_SEARCH_LIMIT,
                          sort_by: str = 'created_at',
                          ascending: bool = False) -> List[MemoryRecord]:
        return asyncio.run(self.service.list_all_memories(user_id, limit, sort_by, ascending))

    def get_stats(self, user_id: str) -> MemoryStats:
        return asyncio.run(self.service.get_stats(user_id))

    def list_all_users(self, limit: int = MAX_SEARCH_LIMIT) -> List[str]:
        return asyncio.run(self.service.list_all_users(limit))

    def list_available_indexes(self) -> List[str]:
        return asyncio.run(self.service.list_available_indexes())

    def switch_index(self, index_name: str) -> bool:
        return asyncio.run(self.service.switch_index(index_name))

    def switch_configuration(self, **changes: Optional[str]) -> MemoryConfiguration:
        return self.service.switch_configuration(**changes)

    def get_current_configuration(self) -> MemoryConfiguration:
        return self.service.get_current_configuration()
