"""
Kind handler registry.

Most component kinds behave the same way: their adapter image follows
a naming convention, their environment is a flattening of their spec,
and their event attributes come from CRD annotations. GenericHandler
implements exactly that from catalog data.

Kinds that deviate register an override handler. The registry is
built once per catalog:

    registry = HandlerRegistry.from_catalog(catalog)
    handler = registry.get("WebhookSource")
    env = handler.build_env(obj)
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from meshctl.components.base import EventAttributes
from meshctl.kubernetes.object import Object
from meshctl.schema.schema import SECRET_REF_KEYS

if TYPE_CHECKING:
    from meshctl.schema.catalog import Catalog, CustomResourceDefinition

logger = logging.getLogger(__name__)

# spec keys that are rendered by the runtime itself, not by the adapter env
_RESERVED_KEYS = ("sink", "adapterOverrides")

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


@dataclass(frozen=True, slots=True)
class EnvVar:
    """
    An adapter environment variable.

    Exactly one of value or secret_ref is set. secret_ref is
    (secret name, key) and is resolved at start time.
    """

    name: str
    value: str | None = None
    secret_ref: tuple[str, str] | None = None


def env_name(path: list[str]) -> str:
    """["auth", "accessKeyID"] -> "AUTH_ACCESS_KEY_ID"."""
    return "_".join(_CAMEL_RE.sub("_", part).upper() for part in path)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _secret_ref(value: dict[str, Any]) -> tuple[str, str] | None:
    for key in SECRET_REF_KEYS:
        ref = value.get(key)
        if isinstance(ref, dict) and "key" in ref:
            return (ref.get("name", ""), ref["key"])
    return None


def flatten_spec(spec: dict[str, Any], prefix: list[str] | None = None) -> list[EnvVar]:
    """Flatten a spec into env vars named after their property path."""
    env: list[EnvVar] = []
    for key, value in spec.items():
        path = [*(prefix or []), key]
        if value is None:
            continue
        if isinstance(value, dict):
            ref = _secret_ref(value)
            if ref is not None:
                env.append(EnvVar(env_name(path), secret_ref=ref))
            else:
                env.extend(flatten_spec(value, path))
        elif isinstance(value, list):
            if all(not isinstance(item, (dict, list)) for item in value):
                env.append(EnvVar(env_name(path), ",".join(_scalar(item) for item in value)))
            else:
                env.append(EnvVar(env_name(path), json.dumps(value)))
        else:
            env.append(EnvVar(env_name(path), _scalar(value)))
    return env


# =============================================================================
# Handlers
# =============================================================================


@runtime_checkable
class KindHandler(Protocol):
    """Per-kind behavior used when rendering components."""

    def build_env(self, obj: Object) -> list[EnvVar]:
        ...

    def event_attributes(self, obj: Object, crd: CustomResourceDefinition | None) -> EventAttributes:
        ...

    def image(self, obj: Object, registry: str, version: str) -> str:
        ...


class GenericHandler:
    """
    Catalog-driven handler.

    Args:
        image_name: Adapter image base name when the kind shares another
            kind's adapter (e.g. AWSS3Source runs awssqssource-adapter)
    """

    def __init__(self, image_name: str | None = None):
        self.image_name = image_name

    def build_env(self, obj: Object) -> list[EnvVar]:
        spec = {k: v for k, v in obj.spec.items() if k not in _RESERVED_KEYS}
        env = flatten_spec(spec)
        overrides = obj.spec.get("adapterOverrides") or {}
        for entry in overrides.get("env") or []:
            if isinstance(entry, dict) and entry.get("name"):
                env.append(EnvVar(entry["name"], _scalar(entry.get("value", ""))))
        return env

    def event_attributes(self, obj: Object, crd: CustomResourceDefinition | None) -> EventAttributes:
        if crd is None:
            return EventAttributes()
        return EventAttributes(
            produced_types=crd.produced_event_types(),
            accepted_types=crd.accepted_event_types(),
        )

    def image(self, obj: Object, registry: str, version: str) -> str:
        name = self.image_name or obj.kind.lower()
        return f"{registry}/{name}-adapter:{version}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(image_name={self.image_name!r})"


class HandlerRegistry:
    """
    Registry mapping lower-cased kind names to handlers.

    Unknown kinds fall back to the default handler.
    """

    def __init__(self, default: KindHandler | None = None):
        self._handlers: dict[str, KindHandler] = {}
        self._default: KindHandler = default or GenericHandler()

    def register(self, kind: str, handler: KindHandler) -> None:
        if not isinstance(handler, KindHandler):
            raise ValueError(f"handler for {kind} must implement build_env, event_attributes and image")
        self._handlers[kind.lower()] = handler
        logger.debug(f"[registry] Registered handler for {kind}: {handler!r}")

    def set_default(self, handler: KindHandler) -> None:
        self._default = handler

    def get(self, kind: str) -> KindHandler:
        return self._handlers.get(kind.lower(), self._default)

    def list_kinds(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, kind: str) -> bool:
        return kind.lower() in self._handlers

    @classmethod
    def from_catalog(
        cls,
        catalog: Catalog,
        overrides: dict[str, KindHandler] | None = None,
    ) -> HandlerRegistry:
        """
        Build a registry with a generic handler per catalog kind, then
        apply overrides. Without explicit overrides the built-in set
        from meshctl.components.handlers is used.
        """
        if overrides is None:
            from meshctl.components.handlers import default_overrides

            overrides = default_overrides()

        registry = cls()
        for kind in catalog.kinds():
            registry.register(kind, GenericHandler())
        for kind, handler in overrides.items():
            registry.register(kind, handler)
        logger.info(
            f"[registry] Built handler registry: {len(catalog.kinds())} catalog kinds, "
            f"{len(overrides)} overrides"
        )
        return registry
