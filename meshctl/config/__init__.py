"""
Configuration for meshctl.

Usage:
    from meshctl.config import Settings, get_settings

    settings = get_settings()
    runtime = LocalRuntime(settings, catalog)
"""

from .schemas import (
    MANIFEST_FILE,
    ROUTING_CONFIG_FILE,
    BrokerSettings,
    CatalogSettings,
    DockerSettings,
    Settings,
)
from .settings import get_settings, load_settings

__all__ = [
    "MANIFEST_FILE",
    "ROUTING_CONFIG_FILE",
    "BrokerSettings",
    "CatalogSettings",
    "DockerSettings",
    "Settings",
    "get_settings",
    "load_settings",
]
