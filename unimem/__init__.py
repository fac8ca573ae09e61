"""
unimem: user-scoped memory over a managed vector store and inference service.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()

from .models.core import MemoryConfiguration, MemoryRecord, MemoryStats, MemoryType  # noqa: E402
from .services.configuration import MemoryConfigurationError  # noqa: E402
from .services.memory_management import MemoryManagementError, MemoryManagementService  # noqa: E402
from .services.sync_memory import SyncMemoryManagementService  # noqa: E402

__all__ = [
    'MemoryConfiguration', 'MemoryConfigurationError', 'MemoryManagementError', 'MemoryManagementService',
    'MemoryRecord', 'MemoryStats', 'MemoryType', 'SyncMemoryManagementService'
]
