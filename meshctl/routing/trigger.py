"""
Trigger component.

A trigger is stored twice: as a Trigger object in the manifest (what
describe and import read) and as an entry in the broker's routing
config (what the running broker reads). apply_trigger_change() keeps
the two in step.
"""

from __future__ import annotations

import hashlib
from typing import Any

import yaml

from meshctl.components.base import DOCKER_HOST, Component
from meshctl.components.broker import BROKER_API_VERSION, BROKER_GROUP, BROKER_KIND
from meshctl.errors import ComponentError
from meshctl.kubernetes.object import CONTEXT_LABEL, NAMESPACE, Metadata, Object
from meshctl.routing.config import DeliveryOptions, LocalTarget, LocalTrigger, RoutingConfig
from meshctl.routing.filters import Filter, matches_all

TRIGGER_KIND = "Trigger"
TRIGGER_API_VERSION = BROKER_API_VERSION


def trigger_name(broker: str, target: str, filters: list[Filter]) -> str:
    """Deterministic name for an unnamed trigger: <broker>-trigger-<8 hex chars>."""
    filter_yaml = yaml.safe_dump([f.to_dict() for f in filters], sort_keys=True)
    digest = hashlib.md5(f"{target}-{filter_yaml}".encode()).digest()
    return f"{broker}-trigger-{digest[:4].hex()}"


def target_url(port: int | str) -> str:
    return f"http://{DOCKER_HOST}:{port}"


class Trigger(Component):
    """
    A routing rule: filters plus a destination component.

    Args:
        name: Trigger name; generated from target and filters when None
        broker: Owning broker
        filters: Event filters, empty means every event
        target: Local destination (component name and URL)
        target_ref: Declarative reference to the target (kind, name, apiVersion)
    """

    def __init__(
        self,
        name: str | None,
        broker: str,
        filters: list[Filter] | None = None,
        *,
        target: LocalTarget | None = None,
        target_ref: dict[str, str] | None = None,
    ):
        self.filters = list(filters or [])
        self.target = target or LocalTarget()
        self.target_ref = dict(target_ref or {})
        if not name:
            if not self.target.component:
                raise ComponentError("trigger needs a name or a target")
            name = trigger_name(broker, self.target.component, self.filters)
        super().__init__(name, broker)

    @property
    def kind(self) -> str:
        return TRIGGER_KIND

    @property
    def api_version(self) -> str:
        return TRIGGER_API_VERSION

    def set_target(
        self,
        component: str,
        port: int | str,
        ref: dict[str, str] | None = None,
        delivery_options: DeliveryOptions | None = None,
    ) -> None:
        self.target = LocalTarget(url=target_url(port), component=component, delivery_options=delivery_options)
        self.target_ref = dict(ref or {"name": component})

    def as_object(self) -> Object:
        spec: dict[str, Any] = {
            "broker": {"name": self.broker, "kind": BROKER_KIND, "group": BROKER_GROUP},
            "target": {"ref": self.target_ref or {"name": self.target.component}},
        }
        if self.filters:
            spec["filters"] = [f.to_dict() for f in self.filters]
        return Object(
            api_version=TRIGGER_API_VERSION,
            kind=TRIGGER_KIND,
            metadata=Metadata(name=self.name, namespace=NAMESPACE, labels={CONTEXT_LABEL: self.broker}),
            spec=spec,
        )

    def as_local_trigger(self) -> LocalTrigger:
        return LocalTrigger(filters=list(self.filters), target=self.target)

    def matches(self, attributes: dict[str, str]) -> bool:
        return matches_all(self.filters, attributes)

    @classmethod
    def from_object(cls, obj: Object, routing: RoutingConfig | None = None) -> Trigger:
        """
        Rebuild a trigger from its manifest object.

        The local target (URL, delivery options) only lives in the
        routing config, so it is looked up there when available.
        """
        filters = [Filter.model_validate(f) for f in obj.spec.get("filters") or []]
        ref = (obj.spec.get("target") or {}).get("ref") or {}
        local = routing.lookup(obj.name) if routing is not None else None
        target = local.target if local is not None else LocalTarget(component=ref.get("name", ""))
        return cls(obj.name, obj.broker, filters, target=target, target_ref=ref)

    @classmethod
    def from_local(cls, name: str, broker: str, local: LocalTrigger) -> Trigger:
        return cls(name, broker, local.filters, target=local.target, target_ref={"name": local.target.component})
