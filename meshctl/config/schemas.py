"""
Configuration Schemas for meshctl.

A single Settings value is built at the entry point and passed down to
every core operation. Nothing below the entry point reads the
environment or keeps a "current broker" global.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

MANIFEST_FILE = "manifest.yaml"
ROUTING_CONFIG_FILE = "broker.conf"
CRD_FILE = "crd.yaml"

DEFAULT_CATALOG_URL = (
    "https://github.com/triggermesh/triggermesh/releases/download/${VERSION}/triggermesh-crds.yaml"
)
DEFAULT_RELEASES_URL = "https://api.github.com/repos/triggermesh/triggermesh/releases/latest"


class BrokerSettings(BaseModel):
    """Memory broker image and tuning."""

    version: str = Field("v1.1.0", description="Broker image tag")
    image: str = Field("gcr.io/triggermesh/memory-broker", description="Broker image repository")
    buffer_size: int = Field(100, ge=1, description="In-memory event buffer size")
    produce_timeout: str = Field("1s", description="Produce timeout passed to the broker")
    config_polling_period: str | None = Field(
        None, description="Routing config polling period (ISO 8601), unset to use file watches"
    )

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.version}"


class DockerSettings(BaseModel):
    """Container supervisor tuning."""

    readiness_interval: float = Field(1.0, gt=0, description="Seconds between TCP readiness probes")
    readiness_retries: int = Field(10, ge=1, description="Readiness probe attempts before giving up")
    startup_log_wait: float = Field(2.0, ge=0, description="Seconds to wait before scanning startup logs")
    api_timeout: int = Field(60, ge=1, description="Docker API call timeout in seconds")


class CatalogSettings(BaseModel):
    """Where the CRD bundle comes from."""

    url_template: str = Field(DEFAULT_CATALOG_URL, description="Bundle URL, ${VERSION} is substituted")
    releases_url: str = Field(DEFAULT_RELEASES_URL, description="API endpoint resolving 'latest'")
    timeout: float = Field(30.0, gt=0)


class Settings(BaseModel):
    """
    meshctl settings.

    Path layout under config_home:

        <config_home>/<broker>/manifest.yaml
        <config_home>/<broker>/broker.conf
        <config_home>/crd/<version>/crd.yaml
    """

    config_home: Path = Field(default_factory=lambda: Path.home() / ".meshctl")
    context: str = Field("", description="Name of the current broker")
    components_version: str = Field("v1.23.0", description="Adapter images and CRD catalog version")
    registry: str = Field("gcr.io/triggermesh", description="Adapter image registry")
    adapter_log_level: str = Field("error", description="Log level pinned in adapter containers")
    metrics_enabled: bool = False

    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)

    def broker_dir(self, broker: str | None = None) -> Path:
        return self.config_home / (broker or self.context)

    def manifest_path(self, broker: str | None = None) -> Path:
        return self.broker_dir(broker) / MANIFEST_FILE

    def routing_config_path(self, broker: str | None = None) -> Path:
        return self.broker_dir(broker) / ROUTING_CONFIG_FILE

    def crd_cache_path(self, version: str | None = None) -> Path:
        return self.config_home / "crd" / (version or self.components_version) / CRD_FILE
