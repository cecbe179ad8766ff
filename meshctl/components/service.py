"""
Generic service component.

Runs an arbitrary user image as an event source or target. Its
declarative form is a Knative Service so the manifest stays
deployable to a cluster.
"""

from __future__ import annotations

from enum import Enum

from meshctl.components.base import ADAPTER_PORT, Component, EventAttributes, RuntimeParams, format_env
from meshctl.components.broker import broker_container_name
from meshctl.errors import ComponentError
from meshctl.kubernetes.object import CONTEXT_LABEL, NAMESPACE, ROLE_LABEL, Metadata, Object

SERVICE_KIND = "Service"
SERVICE_API_VERSION = "serving.knative.dev/v1"


class Role(str, Enum):
    SOURCE = "source"
    TARGET = "target"


class Service(Component):
    """
    A user container.

    Event attributes of a source-role service are read from its
    CE_TYPE (comma-separated) and CE_SOURCE parameters.
    """

    def __init__(
        self,
        name: str,
        broker: str,
        image: str,
        params: dict[str, str] | None = None,
        role: Role | str = Role.TARGET,
    ):
        super().__init__(name, broker)
        self.image = image
        self.params = dict(params or {})
        self.role = Role(role)

    @property
    def kind(self) -> str:
        return SERVICE_KIND

    @property
    def api_version(self) -> str:
        return SERVICE_API_VERSION

    def as_object(self) -> Object:
        params = dict(self.params)
        if self.role is Role.SOURCE:
            params["K_SINK"] = f"http://{broker_container_name(self.broker)}:8080"
        spec = {
            "template": {
                "spec": {
                    "containers": [
                        {
                            "image": self.image,
                            "env": [{"name": key, "value": value} for key, value in params.items()],
                        }
                    ]
                }
            }
        }
        return Object(
            api_version=SERVICE_API_VERSION,
            kind=SERVICE_KIND,
            metadata=Metadata(
                name=self.name,
                namespace=NAMESPACE,
                labels={CONTEXT_LABEL: self.broker, ROLE_LABEL: self.role.value},
            ),
            spec=spec,
        )

    @classmethod
    def from_object(cls, obj: Object) -> Service:
        try:
            container = obj.spec["template"]["spec"]["containers"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ComponentError("service object has no container", obj.name) from e
        params = {
            entry["name"]: str(entry.get("value", ""))
            for entry in container.get("env") or []
            if entry.get("name") and entry["name"] != "K_SINK"
        }
        role = obj.metadata.labels.get(ROLE_LABEL, Role.TARGET.value)
        return cls(obj.name, obj.broker, container.get("image", ""), params, role)

    def container_name(self) -> str:
        return self.name

    def as_runtime_params(self, additional_env: dict[str, str] | None = None) -> RuntimeParams:
        env = {**self.params, **(additional_env or {})}
        return RuntimeParams(
            name=self.container_name(),
            image=self.image,
            exposed_port=ADAPTER_PORT,
            environment=format_env(env),
        )

    def event_types(self) -> list[str]:
        return EventAttributes(
            produced_types=[t.strip() for t in self.params.get("CE_TYPE", "").split(",")]
        ).produced_types

    def event_source(self) -> str:
        return EventAttributes(produced_source=self.params.get("CE_SOURCE", "")).produced_source

    def set_event_attributes(self, attributes: EventAttributes) -> None:
        if attributes.produced_types:
            self.params["CE_TYPE"] = ",".join(attributes.produced_types)
        if attributes.produced_source:
            self.params["CE_SOURCE"] = attributes.produced_source

    def consumed_event_types(self) -> list[str]:
        return []

    def exposed_port(self) -> str:
        return ADAPTER_PORT
