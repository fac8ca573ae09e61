"""
Health check utilities for the memory service backends.
"""

from typing import Any, Dict, Optional

from ..services.backends import BackendError
from ..services.memory_management import MemoryManagementService
from .logging_config import get_logger

logger = get_logger(__name__)

SERVICE_NAME = 'Unified Memory'
SERVICE_VERSION = '1.0.0'


async def get_health_status(service: MemoryManagementService) -> Dict[str, Any]:
    """Get detailed health status of the vector store and inference backends.

    Args:
        service: Memory service whose backends are probed

    Returns:
        Dictionary with health status of each component
    """
    configuration = service.get_current_configuration()
    health_status = {}

    # Vector store: listing indexes exercises connectivity and auth
    try:
        indexes = await service.vector_store.list_indexes()
        health_status['vector_store'] = {
            'healthy': True,
            'service': type(service.vector_store).__name__,
            'indexes': len(indexes)
        }
    except BackendError as e:
        health_status['vector_store'] = {
            'healthy': False,
            'service': type(service.vector_store).__name__,
            'error': str(e)
        }

    # Inference
    inference = service.conversation_inference.inference
    try:
        await inference.chat_complete(configuration.inference_model, [{'role': 'user', 'content': 'Hello'}])
        health_status['inference'] = {
            'healthy': True,
            'service': type(inference).__name__,
            'model': configuration.inference_model
        }
    except BackendError as e:
        health_status['inference'] = {
            'healthy': False,
            'service': type(inference).__name__,
            'model': configuration.inference_model,
            'error': str(e)
        }

    return health_status


async def check_health(service: MemoryManagementService) -> bool:
    """Check the health of all backends.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = await get_health_status(service)
    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All memory backends are healthy')
    else:
        unhealthy = [name for name, status in health_status.items() if not status.get('healthy')]
        logger.warning(f"Unhealthy memory backends: {', '.join(unhealthy)}")

    return all_healthy


async def get_system_info(service: MemoryManagementService,
                          health_status: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get service information, active configuration and health.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'configuration': service.get_current_configuration().to_dict(),
        'working_memory_ttl_hours': service.working_memory_ttl.total_seconds() / 3600,
        'health_status': health_status if health_status is not None else await get_health_status(service)
    }
