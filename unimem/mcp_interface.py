"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .services.memory_management import MemoryManagementError, MemoryManagementService
from .utils.config import config
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Unified Memory')
_memory_service: Optional[MemoryManagementService] = None


def get_memory_service() -> MemoryManagementService:
    """Build the shared service on first use, so importing this module needs no AWS setup."""
    global _memory_service
    if _memory_service is None:
        _memory_service = MemoryManagementService.from_config(config)
    return _memory_service


@mcp.tool()
async def add_memory(user_id: str,
                     content: str,
                     memory_type: str = 'factual',
                     metadata: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
    """Store one memory for a user.

    Args:
        user_id: User ID
        content: Memory text
        memory_type: factual, episodic, working or semantic (default: factual)
        metadata: Optional extra metadata

    Returns:
        List of {id, memory, event} for the stored memory
    """
    try:
        results = await get_memory_service().add(content, user_id, metadata=metadata, memory_type=memory_type)
        return [{'id': r.id, 'memory': r.memory, 'event': r.event} for r in results]
    except MemoryManagementError as e:
        logger.error(f'Memory management error in MCP add: {e}')
        raise Exception(f'Memory add failed: {e}')


@mcp.tool()
async def add_conversation(user_id: str, messages: List[Dict[str, str]], infer: bool = True) -> List[Dict[str, str]]:
    """Store memories from a conversation.

    Args:
        user_id: User ID
        messages: Turns as {role, content}
        infer: Extract facts with the inference model instead of storing each turn (default: True)
    """
    try:
        results = await get_memory_service().add(messages, user_id, infer=infer)
        return [{'id': r.id, 'memory': r.memory, 'event': r.event} for r in results]
    except MemoryManagementError as e:
        logger.error(f'Memory management error in MCP add_conversation: {e}')
        raise Exception(f'Memory add failed: {e}')


@mcp.tool()
async def search_memories(user_id: str, query: str, limit: int = 10, threshold: float = 0.3) -> List[Dict[str, Any]]:
    """Search a user's memories.

    Args:
        user_id: User ID
        query: Natural language query
        limit: Maximum number of results to return (default: 10)
        threshold: Minimum similarity between 0 and 1 (default: 0.3)

    Returns:
        List of memories with their similarity score
    """
    memories = await get_memory_service().search(query, user_id, limit=limit, threshold=threshold)
    logger.debug(f'MCP search returned {len(memories)} memories for user {user_id}')
    return [memory.to_dict() for memory in memories]


@mcp.tool()
async def get_memory(user_id: str, memory_id: str) -> Optional[Dict[str, Any]]:
    """Fetch one memory by id, or null if it does not exist for this user."""
    memory = await get_memory_service().get(memory_id, user_id)
    return memory.to_dict() if memory else None


@mcp.tool()
async def update_memory(user_id: str,
                        memory_id: str,
                        content: str,
                        importance_score: Optional[float] = None) -> Dict[str, Any]:
    """Replace the content of a memory.

    Returns:
        {success, message}
    """
    try:
        result = await get_memory_service().update(memory_id, user_id, content, importance_score=importance_score)
        return {'success': result.success, 'message': result.message}
    except MemoryManagementError as e:
        logger.error(f'Memory management error in MCP update: {e}')
        raise Exception(f'Memory update failed: {e}')


@mcp.tool()
async def delete_memory(user_id: str, memory_id: str) -> Dict[str, Any]:
    """Delete one memory.

    Returns:
        {success, message}
    """
    try:
        result = await get_memory_service().delete(memory_id, user_id)
        return {'success': result.success, 'message': result.message}
    except MemoryManagementError as e:
        logger.error(f'Memory management error in MCP delete: {e}')
        raise Exception(f'Memory deletion failed: {e}')


@mcp.tool()
async def delete_all_memories(user_id: str) -> Dict[str, Any]:
    """Delete every memory of a user (best effort).

    Returns:
        {deleted, failed, message}
    """
    result = await get_memory_service().delete_all(user_id)
    return {'deleted': result.deleted, 'failed': result.failed, 'message': result.message}


@mcp.tool()
async def list_memories(user_id: str,
                        limit: int = 100,
                        sort_by: str = 'created_at',
                        ascending: bool = False,
                        memory_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """List a user's memories.

    Args:
        user_id: User ID
        limit: Maximum number of memories (default: 100)
        sort_by: created_at, updated_at, importance_score or access_count
        ascending: Sort order (default: newest or largest first)
        memory_type: Only return this type
    """
    service = get_memory_service()
    if memory_type:
        memories = await service.get_memories_by_type(user_id, memory_type, limit)
    else:
        memories = await service.list_all_memories(user_id, limit=limit, sort_by=sort_by, ascending=ascending)
    return [memory.to_dict() for memory in memories]


@mcp.tool()
async def get_memory_stats(user_id: str) -> Dict[str, Any]:
    """Count a user's memories per type."""
    stats = await get_memory_service().get_stats(user_id)
    return {
        'total_memories': stats.total_memories,
        'factual_count': stats.factual_count,
        'episodic_count': stats.episodic_count,
        'working_count': stats.working_count,
        'semantic_count': stats.semantic_count,
        'last_updated': stats.last_updated
    }


@mcp.tool()
async def cleanup_working_memory(user_id: str) -> int:
    """Delete expired working memories and return how many were removed."""
    return await get_memory_service().cleanup_working_memory(user_id)


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
