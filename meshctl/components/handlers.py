"""
Override handlers for kinds with nonstandard behavior.

Everything not listed in default_overrides() is handled generically
from the catalog.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from meshctl.components.base import EventAttributes
from meshctl.components.registry import EnvVar, GenericHandler, KindHandler
from meshctl.errors import ComponentError
from meshctl.kubernetes.object import Object

if TYPE_CHECKING:
    from meshctl.schema.catalog import CustomResourceDefinition

# kinds whose adapter is shipped in another kind's image
SHARED_IMAGES = {
    "awss3source": "awssqssource",
    "awseventbridgesource": "awssqssource",
    "azureservicebustopicsource": "azureservicebussource",
    "azureservicebusqueuesource": "azureservicebussource",
    "azureblobstoragesource": "azureeventhubsource",
    "googlecloudauditlogssource": "googlecloudpubsubsource",
    "googlecloudstoragesource": "googlecloudpubsubsource",
    "googlecloudsourcerepositoriessource": "googlecloudpubsubsource",
}

MULTITENANT_KINDS = ("awssnssource", "zendesksource")


class WebhookSourceHandler(GenericHandler):
    """Webhook source: event type and source are plain spec fields."""

    def build_env(self, obj: Object) -> list[EnvVar]:
        env = [
            EnvVar("WEBHOOK_EVENT_TYPE", obj.spec.get("eventType", "")),
            EnvVar("WEBHOOK_EVENT_SOURCE", obj.spec.get("eventSource") or f"{obj.kind.lower()}.{obj.name}"),
        ]
        auth = obj.spec.get("basicAuthUsername")
        if auth:
            env.append(EnvVar("WEBHOOK_BASICAUTH_USERNAME", auth))
        rest = {
            k: v
            for k, v in obj.spec.items()
            if k not in ("eventType", "eventSource", "basicAuthUsername")
        }
        return env + super().build_env(obj.model_copy(update={"spec": rest}))

    def event_attributes(self, obj: Object, crd: CustomResourceDefinition | None) -> EventAttributes:
        event_type = obj.spec.get("eventType", "")
        return EventAttributes(
            produced_types=[event_type] if event_type else [],
            produced_source=obj.spec.get("eventSource") or f"{obj.kind.lower()}.{obj.name}",
        )


class PassthroughTargetHandler(GenericHandler):
    """Targets that accept any event type and produce none."""

    def event_attributes(self, obj: Object, crd: CustomResourceDefinition | None) -> EventAttributes:
        return EventAttributes()


def context_attribute(spec: dict, key: str) -> str:
    """Value set for an event attribute by the last matching "add" context operation."""
    value = ""
    for operation in spec.get("context") or []:
        if not isinstance(operation, dict) or operation.get("operation") != "add":
            continue
        for path in operation.get("paths") or []:
            if isinstance(path, dict) and path.get("key") == key:
                value = str(path.get("value", ""))
    return value


class TransformationHandler(GenericHandler):
    """Transformations pass their operation lists to the adapter as JSON."""

    def build_env(self, obj: Object) -> list[EnvVar]:
        return [
            EnvVar("TRANSFORMATION_CONTEXT", json.dumps(obj.spec.get("context") or [])),
            EnvVar("TRANSFORMATION_DATA", json.dumps(obj.spec.get("data") or [])),
        ]

    def event_attributes(self, obj: Object, crd: CustomResourceDefinition | None) -> EventAttributes:
        event_type = context_attribute(obj.spec, "type")
        return EventAttributes(
            produced_types=[event_type] if event_type else [],
            produced_source=context_attribute(obj.spec, "source"),
        )


class UnsupportedHandler(GenericHandler):
    """Kinds that cannot run locally."""

    def __init__(self, reason: str):
        super().__init__()
        self.reason = reason

    def build_env(self, obj: Object) -> list[EnvVar]:
        raise ComponentError(f"kind {obj.kind} {self.reason}", obj.name)


def default_overrides() -> dict[str, KindHandler]:
    overrides: dict[str, KindHandler] = {
        kind: GenericHandler(image_name=image) for kind, image in SHARED_IMAGES.items()
    }
    overrides["webhooksource"] = WebhookSourceHandler()
    overrides["transformation"] = TransformationHandler()
    overrides["httptarget"] = PassthroughTargetHandler()
    overrides["cloudeventstarget"] = PassthroughTargetHandler()
    for kind in MULTITENANT_KINDS:
        overrides[kind] = UnsupportedHandler("is multitenant and not suitable for local environment")
    return overrides
