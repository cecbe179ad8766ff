"""
Component abstraction.

A component is one node of the event-driven application: broker,
source, target, transformation, trigger, secret or generic service.
Every component renders itself to a declarative Object. Beyond that,
components opt into capabilities:

    Runnable  - renders RuntimeParams and can be run as a container
    Producer  - reports the event types (and source) it emits
    Consumer  - reports the port it listens on and the types it accepts
    Parent    - owns child objects (currently: its Secret)

Capabilities are runtime-checkable protocols so callers test them with
isinstance() instead of knowing concrete classes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from meshctl.kubernetes.object import Object

ADAPTER_PORT = "8080/tcp"
METRICS_PORT = "9092/tcp"
DOCKER_HOST = "host.docker.internal"
HOST_GATEWAY = "host-gateway"


@dataclass(frozen=True, slots=True)
class RuntimeParams:
    """
    Everything the supervisor needs to run a component.

    Derived on demand from the declarative object, never persisted.
    """

    name: str
    image: str
    exposed_port: str = ADAPTER_PORT
    environment: tuple[str, ...] = ()
    volume_bindings: tuple[str, ...] = ()
    host_port_binding: bool = True
    entrypoint: tuple[str, ...] | None = None
    extra_hosts: dict[str, str] = field(default_factory=lambda: {DOCKER_HOST: HOST_GATEWAY})

    def env_map(self) -> dict[str, str]:
        return dict(entry.split("=", 1) for entry in self.environment)


@dataclass(slots=True)
class EventAttributes:
    """Event types and source a component produces or accepts."""

    produced_types: list[str] = field(default_factory=list)
    produced_source: str = ""
    accepted_types: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        # "*" and "-" are wildcards in CRD annotations, not real types
        self.produced_types = [t for t in self.produced_types if t not in ("*", "-", "")]
        self.accepted_types = [t for t in self.accepted_types if t not in ("*", "-", "")]
        if self.produced_source in ("*", "-"):
            self.produced_source = ""


class Component(ABC):
    """Base class for every component kind."""

    def __init__(self, name: str, broker: str):
        self.name = name
        self.broker = broker

    @property
    @abstractmethod
    def kind(self) -> str:
        ...

    @property
    @abstractmethod
    def api_version(self) -> str:
        ...

    @abstractmethod
    def as_object(self) -> Object:
        """Render the declarative object. Raises SpecError on invalid spec."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, broker={self.broker!r})"


# =============================================================================
# Capabilities
# =============================================================================


@runtime_checkable
class Runnable(Protocol):
    def container_name(self) -> str:
        ...

    def as_runtime_params(self, additional_env: dict[str, str] | None = None) -> RuntimeParams:
        ...


@runtime_checkable
class Producer(Protocol):
    def event_types(self) -> list[str]:
        ...

    def event_source(self) -> str:
        ...

    def set_event_attributes(self, attributes: EventAttributes) -> None:
        ...


@runtime_checkable
class Consumer(Protocol):
    def consumed_event_types(self) -> list[str]:
        ...

    def exposed_port(self) -> str:
        ...


@runtime_checkable
class Parent(Protocol):
    def children(self) -> list[Component]:
        ...


def format_env(env: dict[str, str]) -> tuple[str, ...]:
    return tuple(f"{key}={value}" for key, value in env.items())
