"""
Exception taxonomy for meshctl.

Errors fall into four families:

1. Validation: user input does not fit the kind's schema. Raised before
   any state is written.
2. I/O: manifest, routing config, catalog download, container engine.
   Always chained to the underlying cause.
3. Consistency: trigger changes that cannot be applied to both the
   manifest and the routing config.
4. Readiness: a container did not come up in time.

Every error keeps enough structured context (property path, kind,
known properties) for a caller to print an actionable message.
"""

from __future__ import annotations

from typing import Any


class MeshError(Exception):
    """Base exception for all meshctl errors."""


# =============================================================================
# Validation
# =============================================================================


class SpecError(MeshError):
    """Base class for spec validation errors."""

    def __init__(self, message: str, *, path: str = "", kind: str = ""):
        super().__init__(message)
        self.path = path
        self.kind = kind

    def __str__(self) -> str:
        if self.kind:
            return f"{self.kind}: {self.args[0]}"
        return str(self.args[0])


class UnknownPropertyError(SpecError):
    """Raised when a spec key does not exist in the schema."""

    def __init__(self, path: str, available: list[str], *, kind: str = ""):
        self.available = sorted(available)
        message = (
            f'property "{path}" does not exist, '
            f"available values are: {', '.join(self.available)}"
        )
        super().__init__(message, path=path, kind=kind)


class PropertyTypeError(SpecError):
    """Raised when a value cannot be coerced into its schema type."""

    def __init__(self, path: str, expected: str, value: Any, *, kind: str = "", hint: str = ""):
        self.expected = expected
        self.value = value
        message = f'property "{path}" expected to be {expected}, got {type(value).__name__}'
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message, path=path, kind=kind)


class SpecValidationError(SpecError):
    """Raised when a processed spec does not satisfy its schema."""

    def __init__(self, kind: str, issues: list[tuple[str, str]]):
        self.issues = issues
        details = "; ".join(f"{path or '<root>'}: {message}" for path, message in issues)
        super().__init__(f"spec validation failed: {details}", path=issues[0][0] if issues else "", kind=kind)


class SecretValueError(SpecError):
    """Raised when a secret-marked property holds a non-string value."""

    def __init__(self, path: str, value: Any):
        self.value_type = type(value).__name__
        super().__init__(
            f'secret property "{path}" must be a string, got {self.value_type}',
            path=path,
        )


# =============================================================================
# Catalog
# =============================================================================


class CatalogError(MeshError):
    """Raised when the CRD catalog cannot be read or fetched."""


class KindNotFoundError(CatalogError):
    """Raised when a kind is not present in the catalog."""

    def __init__(self, kind: str):
        super().__init__(f'CRD for resource "{kind}" does not exist')
        self.kind = kind


# =============================================================================
# Manifest and routing config
# =============================================================================


class ManifestError(MeshError):
    """Raised when the manifest cannot be read or written."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.args[0]}"
        return str(self.args[0])


class ManifestNotFoundError(ManifestError):
    """Raised when the broker manifest file is missing."""

    def __init__(self, path: str):
        super().__init__("manifest does not exist, please create the broker", path)


class RoutingConfigError(ManifestError):
    """Raised when the local routing config cannot be read, written or staged."""


class FilterError(MeshError):
    """Raised when a trigger filter is malformed or cannot be evaluated locally."""


# =============================================================================
# Components
# =============================================================================


class ComponentError(MeshError):
    """Raised when a component is missing or lacks a required capability."""

    def __init__(self, message: str, name: str = ""):
        super().__init__(message)
        self.name = name

    def __str__(self) -> str:
        if self.name:
            return f'"{self.name}" {self.args[0]}'
        return str(self.args[0])


# =============================================================================
# Containers
# =============================================================================


class ContainerError(MeshError):
    """Base exception for container engine failures."""

    def __init__(self, message: str, name: str = ""):
        super().__init__(message)
        self.name = name

    def __str__(self) -> str:
        if self.name:
            return f"[{self.name}] {self.args[0]}"
        return str(self.args[0])


class ContainerNotFoundError(ContainerError):
    """Raised when a named container does not exist."""

    def __init__(self, name: str):
        super().__init__("container not found", name)


class ImagePullError(ContainerError):
    """Raised when an image pull fails for any reason other than a missing image."""

    def __init__(self, image: str, cause: str):
        super().__init__(f"pulling image {image}: {cause}")
        self.image = image


class ReadinessTimeoutError(ContainerError):
    """Raised when a container port does not accept connections in time."""

    def __init__(self, name: str, port: int, attempts: int):
        super().__init__(f"port {port} is not reachable after {attempts} attempts", name)
        self.port = port
        self.attempts = attempts


class ContainerStartupError(ContainerError):
    """Raised when a freshly started container logs an error-level entry."""

    def __init__(self, name: str, level: str, message: str):
        super().__init__(f"container reported {level}: {message}", name)
        self.level = level
