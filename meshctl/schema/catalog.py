"""
CRD catalog.

The catalog is a versioned, read-only bundle of CustomResourceDefinitions
that describes every component kind: its API group/version, its spec
schema, and the event types it produces or accepts.

Usage:
    fetcher = CatalogFetcher(settings)
    catalog = await fetcher.fetch()

    schema = catalog.schema("httptarget")
    catalog.sources()   # ['awss3source', 'webhooksource', ...]
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from meshctl.config.schemas import Settings
from meshctl.errors import CatalogError, KindNotFoundError
from meshctl.schema.schema import Schema

logger = logging.getLogger(__name__)

PRODUCED_EVENT_TYPES_ANNOTATION = "registry.knative.dev/eventTypes"
ACCEPTED_EVENT_TYPES_ANNOTATION = "registry.triggermesh.io/acceptedEventTypes"

SOURCES_GROUP = "sources.triggermesh.io"
TARGETS_GROUP = "targets.triggermesh.io"
FLOW_GROUP = "flow.triggermesh.io"


# =============================================================================
# CRD models
# =============================================================================


class CRDNames(BaseModel):
    kind: str
    plural: str = ""
    categories: list[str] = Field(default_factory=list)


class CRDVersion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    served: bool = True
    storage: bool = False
    openapi: dict[str, Any] = Field(default_factory=dict, alias="schema")


class CRDSpec(BaseModel):
    group: str
    names: CRDNames
    versions: list[CRDVersion] = Field(default_factory=list)


class CRDMetadata(BaseModel):
    name: str = ""
    annotations: dict[str, str] = Field(default_factory=dict)


class CustomResourceDefinition(BaseModel):
    """The parts of a CRD the catalog needs."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field("apiextensions.k8s.io/v1", alias="apiVersion")
    kind: str = "CustomResourceDefinition"
    metadata: CRDMetadata = Field(default_factory=CRDMetadata)
    spec: CRDSpec

    @property
    def resource_kind(self) -> str:
        return self.spec.names.kind

    def served_version(self) -> CRDVersion:
        for version in self.spec.versions:
            if version.served:
                return version
        raise CatalogError(f"{self.resource_kind} has no served versions")

    @property
    def resource_api_version(self) -> str:
        return f"{self.spec.group}/{self.served_version().name}"

    def spec_schema(self) -> dict[str, Any]:
        openapi = self.served_version().openapi.get("openAPIV3Schema") or {}
        return (openapi.get("properties") or {}).get("spec") or {}

    def _event_types(self, annotation: str) -> list[str]:
        raw = self.metadata.annotations.get(annotation)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CatalogError(f"{self.resource_kind}: malformed {annotation} annotation: {e}") from e
        return [entry["type"] for entry in entries if isinstance(entry, dict) and entry.get("type")]

    def produced_event_types(self) -> list[str]:
        return self._event_types(PRODUCED_EVENT_TYPES_ANNOTATION)

    def accepted_event_types(self) -> list[str]:
        return self._event_types(ACCEPTED_EVENT_TYPES_ANNOTATION)


# =============================================================================
# Catalog
# =============================================================================


class Catalog:
    """
    CRDs indexed by lower-cased kind.

    Schemas are parsed on first use and cached for the lifetime of the
    catalog, which is bound to a single catalog version.
    """

    def __init__(self, crds: Iterable[CustomResourceDefinition], version: str = ""):
        self.version = version
        self._crds: dict[str, CustomResourceDefinition] = {
            crd.resource_kind.lower(): crd for crd in crds
        }
        self._schemas: dict[str, Schema] = {}

    @classmethod
    def from_yaml(cls, text: str, version: str = "") -> Catalog:
        crds = []
        try:
            for document in yaml.safe_load_all(text):
                if not document:
                    continue
                crds.append(CustomResourceDefinition.model_validate(document))
        except (yaml.YAMLError, ValidationError) as e:
            raise CatalogError(f"parsing CRD bundle: {e}") from e
        logger.debug(f"[catalog] Parsed {len(crds)} CRDs (version={version or 'unknown'})")
        return cls(crds, version)

    @classmethod
    def from_file(cls, path: Path | str, version: str = "") -> Catalog:
        try:
            text = Path(path).read_text()
        except OSError as e:
            raise CatalogError(f"reading CRD bundle {path}: {e}") from e
        return cls.from_yaml(text, version)

    def __contains__(self, kind: str) -> bool:
        return kind.lower() in self._crds

    def get(self, kind: str) -> CustomResourceDefinition:
        crd = self._crds.get(kind.lower())
        if crd is None:
            raise KindNotFoundError(kind)
        return crd

    def kinds(self) -> list[str]:
        return sorted(self._crds)

    def _by_group(self, group: str) -> list[str]:
        return sorted(key for key, crd in self._crds.items() if crd.spec.group == group)

    def sources(self) -> list[str]:
        return self._by_group(SOURCES_GROUP)

    def targets(self) -> list[str]:
        return self._by_group(TARGETS_GROUP)

    def schema(self, kind: str) -> Schema:
        key = kind.lower()
        if key not in self._schemas:
            crd = self.get(key)
            self._schemas[key] = Schema.from_openapi(
                crd.resource_kind, crd.resource_api_version, crd.spec_schema()
            )
        return self._schemas[key]


# =============================================================================
# Fetcher
# =============================================================================


class CatalogFetcher:
    """
    Download the CRD bundle into the version-keyed disk cache.

    A cached bundle is never re-downloaded; delete the cache directory
    to force a refresh.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            response = await self._client.get(url)
        else:
            async with httpx.AsyncClient(
                timeout=self._settings.catalog.timeout, follow_redirects=True
            ) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response

    async def resolve_version(self, version: str) -> str:
        if version != "latest":
            return version
        try:
            response = await self._get(self._settings.catalog.releases_url)
            tag = response.json()["tag_name"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise CatalogError(f"resolving latest catalog version: {e}") from e
        logger.info(f"[catalog] Resolved latest version to {tag}")
        return tag

    async def fetch(self, version: str | None = None) -> Catalog:
        version = await self.resolve_version(version or self._settings.components_version)
        path = self._settings.crd_cache_path(version)
        if not path.exists():
            await self._download(version, path)
        return Catalog.from_file(path, version)

    async def _download(self, version: str, path: Path) -> None:
        url = self._settings.catalog.url_template.replace("${VERSION}", version)
        logger.info(f"[catalog] Downloading CRD bundle {version} from {url}")
        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            raise CatalogError(f"downloading CRD bundle {version}: {e}") from e

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".crd-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(response.content)
            os.replace(tmp, path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise CatalogError(f"caching CRD bundle at {path}: {e}") from e
