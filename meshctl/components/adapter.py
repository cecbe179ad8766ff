"""
Catalog-backed adapter components.

Sources, targets and transformations share one shape: a CRD kind from
the catalog, a user spec validated against that kind's schema, a
Secret for any secret-marked properties, and an adapter container
whose image and environment come from the kind's handler.
"""

from __future__ import annotations

import copy
import json
import logging
from meshctl.components.base import (
    ADAPTER_PORT,
    METRICS_PORT,
    Component,
    EventAttributes,
    RuntimeParams,
    format_env,
)
from meshctl.components.registry import HandlerRegistry, KindHandler
from meshctl.components.secret import Secret
from meshctl.config.schemas import Settings
from meshctl.kubernetes.object import Object, build_object
from meshctl.schema.catalog import Catalog
from meshctl.schema.secrets import extract_secrets, secret_name
from meshctl.schema.values import SpecMap

logger = logging.getLogger(__name__)


def adapter_runtime_params(
    obj: Object,
    handler: KindHandler,
    settings: Settings,
    container_name: str,
    additional_env: dict[str, str] | None = None,
) -> RuntimeParams:
    """
    Render the container parameters of an adapter.

    Secret-backed variables are filled from additional_env by secret
    key; whatever is left in additional_env afterwards is appended
    verbatim and wins over spec-derived values.
    """
    additional = dict(additional_env or {})
    env: dict[str, str] = {}

    for var in handler.build_env(obj):
        if var.secret_ref is None:
            env[var.name] = var.value or ""
            continue
        _, key = var.secret_ref
        if key in additional:
            env[var.name] = additional.pop(key)
        else:
            logger.warning(f"[adapter] {obj.name}: no value for secret key {key}, {var.name} left unset")

    sink = obj.spec.get("sink") or {}
    if isinstance(sink, dict) and sink.get("uri"):
        env["K_SINK"] = sink["uri"]

    env["K_LOGGING_CONFIG"] = json.dumps(
        {"zap-logger-config": json.dumps({"level": settings.adapter_log_level})}
    )
    if settings.metrics_enabled:
        env["K_METRICS_CONFIG"] = json.dumps(
            {
                "Domain": "triggermesh.io",
                "Component": obj.kind.lower(),
                "ConfigMap": {"metrics.backend-destination": "prometheus"},
            }
        )
        env["METRICS_PROMETHEUS_PORT"] = METRICS_PORT.split("/")[0]

    env.update(additional)

    return RuntimeParams(
        name=container_name,
        image=handler.image(obj, settings.registry, settings.components_version),
        exposed_port=ADAPTER_PORT,
        environment=format_env(env),
    )


def normalize_kind(kind: str, suffix: str) -> str:
    """Append the kind suffix if missing: awss3 -> awss3source."""
    kind = kind.lower()
    if not kind.endswith(suffix):
        kind += suffix
    return kind


class AdapterComponent(Component):
    """
    Base for components backed by a catalog kind and an adapter image.

    Args:
        name: Component name
        broker: Owning broker
        kind: Catalog kind (case-insensitive)
        spec: Raw user spec; secrets may still be inline
        catalog: CRD catalog for the configured version
        handlers: Kind handler registry
        settings: meshctl settings
        annotations: Annotations carried over from a persisted object
    """

    def __init__(
        self,
        name: str,
        broker: str,
        kind: str,
        spec: SpecMap | None,
        *,
        catalog: Catalog,
        handlers: HandlerRegistry,
        settings: Settings,
        annotations: dict[str, str] | None = None,
    ):
        super().__init__(name, broker)
        self._crd = catalog.get(kind)
        self._schema = catalog.schema(kind)
        self._handler = handlers.get(self._schema.kind)
        self._settings = settings
        self.spec: SpecMap = copy.deepcopy(spec or {})
        self.annotations = dict(annotations or {})

    @property
    def kind(self) -> str:
        return self._schema.kind

    @property
    def api_version(self) -> str:
        return self._schema.api_version

    def _raw_spec(self) -> SpecMap:
        """Spec as persisted, before secret extraction."""
        return copy.deepcopy(self.spec)

    def _detached(self) -> tuple[SpecMap, dict[str, str]]:
        spec = self._raw_spec()
        payload = extract_secrets(self.name, self._schema, spec)
        return spec, payload

    def as_object(self) -> Object:
        spec, _ = self._detached()
        return build_object(self._schema, self.name, self.broker, spec, annotations=self.annotations)

    def children(self) -> list[Component]:
        _, payload = self._detached()
        if not payload:
            return []
        return [Secret(secret_name(self.name), self.broker, payload)]

    def container_name(self) -> str:
        return self.name

    def as_runtime_params(self, additional_env: dict[str, str] | None = None) -> RuntimeParams:
        return adapter_runtime_params(
            self.as_object(), self._handler, self._settings, self.container_name(), additional_env
        )

    def event_attributes(self) -> EventAttributes:
        return self._handler.event_attributes(self.as_object(), self._crd)
