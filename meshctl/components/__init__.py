"""
Component abstraction for meshctl.

Usage:
    from meshctl.components import HandlerRegistry, Source

    handlers = HandlerRegistry.from_catalog(catalog)
    source = Source(None, "demo", "webhook", {"eventType": "io.example"},
                    catalog=catalog, handlers=handlers, settings=settings)
    obj = source.as_object()
"""

from .adapter import AdapterComponent, adapter_runtime_params, normalize_kind
from .base import (
    ADAPTER_PORT,
    Component,
    Consumer,
    EventAttributes,
    Parent,
    Producer,
    Runnable,
    RuntimeParams,
)
from .broker import BROKER_API_VERSION, BROKER_KIND, Broker, broker_container_name, broker_ref
from .registry import EnvVar, GenericHandler, HandlerRegistry, KindHandler
from .secret import SECRET_KIND, Secret
from .service import SERVICE_API_VERSION, SERVICE_KIND, Role, Service
from .source import Source
from .target import Target
from .transformation import Transformation

__all__ = [
    "AdapterComponent",
    "adapter_runtime_params",
    "normalize_kind",
    "ADAPTER_PORT",
    "Component",
    "Consumer",
    "EventAttributes",
    "Parent",
    "Producer",
    "Runnable",
    "RuntimeParams",
    "BROKER_API_VERSION",
    "BROKER_KIND",
    "Broker",
    "broker_container_name",
    "broker_ref",
    "EnvVar",
    "GenericHandler",
    "HandlerRegistry",
    "KindHandler",
    "SECRET_KIND",
    "Secret",
    "SERVICE_API_VERSION",
    "SERVICE_KIND",
    "Role",
    "Service",
    "Source",
    "Target",
    "Transformation",
]
