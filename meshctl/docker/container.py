"""Container state as seen by the supervisor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ContainerStatus(str, Enum):
    NOT_FOUND = "not found"
    CREATED = "created"
    RUNNING = "running"
    RESTARTING = "restarting"
    PAUSED = "paused"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"

    @classmethod
    def parse(cls, value: str | None) -> ContainerStatus:
        try:
            return cls(value or "")
        except ValueError:
            return cls.NOT_FOUND


@dataclass(frozen=True, slots=True)
class ContainerHandle:
    """Snapshot of a container at the time it was looked up."""

    id: str
    name: str
    image: str
    status: ContainerStatus
    host_port: int | None = None

    @classmethod
    def from_attrs(cls, attrs: dict[str, Any], exposed_port: str | None = None) -> ContainerHandle:
        host_port = None
        bindings = (attrs.get("HostConfig") or {}).get("PortBindings") or {}
        ports = [exposed_port] if exposed_port else list(bindings)
        for port in ports:
            for binding in bindings.get(port) or []:
                if binding.get("HostPort"):
                    host_port = int(binding["HostPort"])
                    break
            if host_port is not None:
                break
        return cls(
            id=attrs.get("Id", ""),
            name=(attrs.get("Name") or "").lstrip("/"),
            image=(attrs.get("Config") or {}).get("Image", ""),
            status=ContainerStatus.parse((attrs.get("State") or {}).get("Status")),
            host_port=host_port,
        )

    @property
    def running(self) -> bool:
        return self.status is ContainerStatus.RUNNING
