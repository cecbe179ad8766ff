"""Source component: an adapter that produces events into the broker."""

from __future__ import annotations

from meshctl.components.adapter import AdapterComponent, normalize_kind
from meshctl.components.base import EventAttributes
from meshctl.components.broker import broker_ref
from meshctl.errors import ComponentError
from meshctl.schema.values import SpecMap


class Source(AdapterComponent):
    def __init__(self, name: str | None, broker: str, kind: str, spec: SpecMap | None, **kwargs):
        kind = normalize_kind(kind, "source")
        super().__init__(name or f"{broker}-{kind}", broker, kind, spec, **kwargs)

    def _raw_spec(self) -> SpecMap:
        spec = super()._raw_spec()
        spec["sink"] = {"ref": broker_ref(self.broker)}
        return spec

    def event_types(self) -> list[str]:
        return self.event_attributes().produced_types

    def event_source(self) -> str:
        return self.event_attributes().produced_source

    def set_event_attributes(self, attributes: EventAttributes) -> None:
        raise ComponentError("event attributes of a source are defined by its kind", self.name)
