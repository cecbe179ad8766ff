"""Declarative object model and manifest."""

from .manifest import Manifest
from .object import (
    CONTEXT_LABEL,
    EXTERNAL_RESOURCES_ANNOTATION,
    NAMESPACE,
    ROLE_LABEL,
    USER_INPUT_TAG,
    Metadata,
    Object,
    build_object,
)

__all__ = [
    "Manifest",
    "CONTEXT_LABEL",
    "EXTERNAL_RESOURCES_ANNOTATION",
    "NAMESPACE",
    "ROLE_LABEL",
    "USER_INPUT_TAG",
    "Metadata",
    "Object",
    "build_object",
]
