"""Target component: an adapter that receives events from triggers."""

from __future__ import annotations

from meshctl.components.adapter import AdapterComponent, normalize_kind
from meshctl.components.base import ADAPTER_PORT
from meshctl.schema.values import SpecMap


class Target(AdapterComponent):
    def __init__(self, name: str | None, broker: str, kind: str, spec: SpecMap | None, **kwargs):
        kind = normalize_kind(kind, "target")
        super().__init__(name or f"{broker}-{kind}", broker, kind, spec, **kwargs)

    def consumed_event_types(self) -> list[str]:
        return self.event_attributes().accepted_types

    def exposed_port(self) -> str:
        return ADAPTER_PORT
