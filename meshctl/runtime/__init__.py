"""User-level operations over a local broker."""

from .local import ComponentDescription, LocalRuntime
from .objects import component_from_object, secret_env

__all__ = ["ComponentDescription", "LocalRuntime", "component_from_object", "secret_env"]
