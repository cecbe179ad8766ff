"""
Broker component.

The broker is the hub of a local application: every source sinks into
it and every trigger is evaluated by it. Locally it runs the memory
broker image with the routing config bind-mounted and watched for
changes.
"""

from __future__ import annotations

import logging

from meshctl.components.base import ADAPTER_PORT, Component, RuntimeParams, format_env
from meshctl.config.schemas import Settings
from meshctl.kubernetes.object import CONTEXT_LABEL, NAMESPACE, Metadata, Object

logger = logging.getLogger(__name__)

BROKER_KIND = "RedisBroker"
BROKER_GROUP = "eventing.triggermesh.io"
BROKER_API_VERSION = f"{BROKER_GROUP}/v1alpha1"
BROKER_CONFIG_MOUNT = "/etc/triggermesh/broker.conf"


def broker_ref(name: str) -> dict[str, str]:
    """Sink reference pointing at a broker."""
    return {"name": name, "kind": BROKER_KIND, "apiVersion": BROKER_API_VERSION}


def broker_container_name(name: str) -> str:
    return f"{name}-broker"


class Broker(Component):
    def __init__(self, name: str, settings: Settings):
        super().__init__(name, name)
        self._settings = settings

    @property
    def kind(self) -> str:
        return BROKER_KIND

    @property
    def api_version(self) -> str:
        return BROKER_API_VERSION

    @property
    def config_path(self):
        return self._settings.routing_config_path(self.name)

    @property
    def manifest_path(self):
        return self._settings.manifest_path(self.name)

    def as_object(self) -> Object:
        return Object(
            api_version=BROKER_API_VERSION,
            kind=BROKER_KIND,
            metadata=Metadata(name=self.name, namespace=NAMESPACE, labels={CONTEXT_LABEL: self.name}),
        )

    def container_name(self) -> str:
        return broker_container_name(self.name)

    def entrypoint(self) -> tuple[str, ...]:
        broker = self._settings.broker
        args = [
            "/memory-broker",
            "start",
            "--memory.buffer-size",
            str(broker.buffer_size),
            "--memory.produce-timeout",
            broker.produce_timeout,
            "--broker-config-path",
            BROKER_CONFIG_MOUNT,
        ]
        if broker.config_polling_period:
            args += ["--config-polling-period", broker.config_polling_period]
        return tuple(args)

    def as_runtime_params(self, additional_env: dict[str, str] | None = None) -> RuntimeParams:
        return RuntimeParams(
            name=self.container_name(),
            image=self._settings.broker.image_ref,
            exposed_port=ADAPTER_PORT,
            environment=format_env(dict(additional_env or {})),
            volume_bindings=(f"{self.config_path}:{BROKER_CONFIG_MOUNT}",),
            entrypoint=self.entrypoint(),
        )

    def consumed_event_types(self) -> list[str]:
        return []

    def exposed_port(self) -> str:
        return ADAPTER_PORT

    def initialize(self) -> None:
        """Create the broker directory with an empty manifest and routing config."""
        self._settings.broker_dir(self.name).mkdir(parents=True, exist_ok=True)
        for path in (self.manifest_path, self.config_path):
            if not path.exists():
                path.touch()
        logger.info(f"[broker] Initialized {self.name} at {self._settings.broker_dir(self.name)}")
