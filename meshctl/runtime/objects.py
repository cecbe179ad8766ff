"""
Object -> component resolution.

Rebuilds live components from persisted manifest objects, and resolves
the secret values a component needs at start time.
"""

from __future__ import annotations

from meshctl.components import (
    BROKER_KIND,
    SECRET_KIND,
    SERVICE_API_VERSION,
    SERVICE_KIND,
    Broker,
    Component,
    HandlerRegistry,
    Parent,
    Secret,
    Service,
    Source,
    Target,
    Transformation,
)
from meshctl.components.transformation import TRANSFORMATION_KIND
from meshctl.config.schemas import Settings
from meshctl.errors import ComponentError
from meshctl.kubernetes.manifest import Manifest
from meshctl.kubernetes.object import Object
from meshctl.routing.config import RoutingConfig
from meshctl.routing.trigger import TRIGGER_KIND, Trigger
from meshctl.schema.catalog import FLOW_GROUP, SOURCES_GROUP, TARGETS_GROUP, Catalog
from meshctl.schema.secrets import decode_secret_data, secret_name


def component_from_object(
    obj: Object,
    *,
    catalog: Catalog,
    handlers: HandlerRegistry,
    settings: Settings,
    routing: RoutingConfig | None = None,
) -> Component:
    """
    Build the component a manifest object describes.

    Raises:
        ComponentError: the object's kind is not a known component
        KindNotFoundError: the kind is missing from the catalog
    """
    broker = obj.broker or settings.context

    if obj.kind == BROKER_KIND:
        return Broker(obj.name, settings)
    if obj.kind == TRIGGER_KIND:
        return Trigger.from_object(obj, routing)
    if obj.kind == SECRET_KIND:
        return Secret.from_object(obj)
    if obj.kind == SERVICE_KIND and obj.api_version == SERVICE_API_VERSION:
        return Service.from_object(obj)

    group = obj.api_version.split("/", 1)[0]
    kwargs = {
        "catalog": catalog,
        "handlers": handlers,
        "settings": settings,
        "annotations": obj.metadata.annotations,
    }
    if group == SOURCES_GROUP:
        spec = {k: v for k, v in obj.spec.items() if k != "sink"}
        return Source(obj.name, broker, obj.kind, spec, **kwargs)
    if group == TARGETS_GROUP:
        return Target(obj.name, broker, obj.kind, obj.spec, **kwargs)
    if group == FLOW_GROUP and obj.kind.lower() == TRANSFORMATION_KIND:
        return Transformation(obj.name, broker, obj.spec, **kwargs)
    raise ComponentError(f"kind {obj.kind} ({obj.api_version}) is not supported", obj.name)


def secret_env(component: Component, manifest: Manifest) -> dict[str, str]:
    """
    Plaintext secret values for a component, keyed by secret key.

    Values still inline in the component's spec win over the ones
    already persisted in the manifest's Secret object.
    """
    env: dict[str, str] = {}
    persisted = manifest.get(secret_name(component.name), SECRET_KIND)
    if persisted is not None:
        env.update(decode_secret_data(persisted.data))
    if isinstance(component, Parent):
        for child in component.children():
            if isinstance(child, Secret):
                env.update(child.decoded())
    return env
