"""Shared FastAPI dependency providers for core infrastructure."""

from typing import Annotated

from fastapi import Depends

from .config import Settings, get_global_settings
from .graph_database import GraphDatabaseManager, get_graph_manager


def get_settings_dependency() -> Settings:
    """Get the application settings."""
    return get_global_settings()


def get_graph_database() -> GraphDatabaseManager:
    """Get the shared graph database manager."""
    return get_graph_manager()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]
GraphDatabaseDep = Annotated[GraphDatabaseManager, Depends(get_graph_database)]

__all__ = [
    "get_settings_dependency",
    "get_graph_database",
    "SettingsDep",
    "GraphDatabaseDep",
]
