"""
Transformation component.

A transformation both consumes and produces events. The type and
source of what it produces are whatever its context operations set:

    context:
    - operation: add
      paths:
      - key: type
        value: io.example.transformed
"""

from __future__ import annotations

from meshctl.components.adapter import AdapterComponent
from meshctl.components.base import ADAPTER_PORT, EventAttributes
from meshctl.schema.values import SpecMap

TRANSFORMATION_KIND = "transformation"


class Transformation(AdapterComponent):
    def __init__(self, name: str | None, broker: str, spec: SpecMap | None, **kwargs):
        super().__init__(name or f"{broker}-{TRANSFORMATION_KIND}", broker, TRANSFORMATION_KIND, spec, **kwargs)

    def event_types(self) -> list[str]:
        return self.event_attributes().produced_types

    def event_source(self) -> str:
        return self.event_attributes().produced_source

    def set_event_attributes(self, attributes: EventAttributes) -> None:
        paths = []
        if attributes.produced_types:
            paths.append({"key": "type", "value": attributes.produced_types[0]})
        if attributes.produced_source:
            paths.append({"key": "source", "value": attributes.produced_source})
        if paths:
            self.spec.setdefault("context", []).append({"operation": "add", "paths": paths})

    def consumed_event_types(self) -> list[str]:
        return []

    def exposed_port(self) -> str:
        return ADAPTER_PORT
