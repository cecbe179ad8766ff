"""
Declarative objects.

An Object is the persisted form of one component instance, shaped like
a Kubernetes resource so that a manifest can later be applied to a
cluster unchanged.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from meshctl.schema.schema import Schema
from meshctl.schema.values import SpecMap

NAMESPACE = "local"

CONTEXT_LABEL = "triggermesh.io/context"
ROLE_LABEL = "triggermesh.io/role"
EXTERNAL_RESOURCES_ANNOTATION = "triggermesh.io/external-resources"

USER_INPUT_TAG = "<user_input>"


class Metadata(BaseModel):
    name: str
    namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class Object(BaseModel):
    """
    A declarative component object.

    Identity is (api_version, kind, name). Equality is full deep
    equality over every field.
    """

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(..., alias="apiVersion")
    kind: str
    metadata: Metadata
    spec: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, str] = Field(default_factory=dict)
    type: str | None = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.api_version, self.kind, self.metadata.name)

    @property
    def broker(self) -> str:
        return self.metadata.labels.get(CONTEXT_LABEL, "")

    def to_dict(self) -> dict[str, Any]:
        """Serializable form; empty optional sections are omitted."""
        doc = self.model_dump(by_alias=True, exclude_none=True)
        for key in ("labels", "annotations"):
            if not doc["metadata"].get(key):
                doc["metadata"].pop(key, None)
        for key in ("spec", "data"):
            if not doc.get(key):
                doc.pop(key, None)
        return doc


def build_object(
    schema: Schema,
    name: str,
    broker: str,
    raw_spec: SpecMap,
    *,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> Object:
    """
    Build a validated object for a catalog kind.

    The spec is processed and validated before the object exists, so
    an invalid spec never reaches the manifest.

    Raises:
        SpecError: the spec does not fit the kind's schema
    """
    spec = schema.process(raw_spec)
    schema.validate(spec)
    return Object(
        api_version=schema.api_version,
        kind=schema.kind,
        metadata=Metadata(
            name=name,
            namespace=NAMESPACE,
            labels={CONTEXT_LABEL: broker, **(labels or {})},
            annotations=dict(annotations or {}),
        ),
        spec=spec,
    )
