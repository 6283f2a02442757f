"""Core infrastructure module.

This module exports core utilities used across features.
Never imports from features - only from external libraries.
"""

from .config import Settings, get_global_settings, get_settings
from .database import DatabaseManager, get_db, get_db_manager
from .enums import DataSufficiency, LifecycleStage, SuspicionLevel
from .exceptions import (
    BatchSyncError,
    DatabaseError,
    ExternalServiceError,
    GraphStoreUnavailableError,
    ServiceException,
    ValidationError,
)
from .graph_database import GraphDatabaseManager, get_graph_manager
from .models import Base

__all__ = [
    "Settings",
    "get_settings",
    "get_global_settings",
    "DatabaseManager",
    "get_db",
    "get_db_manager",
    "GraphDatabaseManager",
    "get_graph_manager",
    "DataSufficiency",
    "LifecycleStage",
    "SuspicionLevel",
    "ServiceException",
    "DatabaseError",
    "ValidationError",
    "ExternalServiceError",
    "GraphStoreUnavailableError",
    "BatchSyncError",
    "Base",
]
