"""Container Lifecycle Supervisor over the local Docker engine."""

from .container import ContainerHandle, ContainerStatus
from .supervisor import Supervisor, free_port

__all__ = ["ContainerHandle", "ContainerStatus", "Supervisor", "free_port"]
