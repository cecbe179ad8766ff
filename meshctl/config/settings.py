"""
Settings loader.

Entry points call get_settings() once and thread the result through.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from meshctl.config.schemas import BrokerSettings, CatalogSettings, DockerSettings, Settings

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def load_settings() -> Settings:
    """Build Settings from MESHCTL_* environment variables."""
    home = os.getenv("MESHCTL_CONFIG_HOME")
    broker = BrokerSettings(
        version=os.getenv("MESHCTL_BROKER_VERSION", "v1.1.0"),
        image=os.getenv("MESHCTL_BROKER_IMAGE", "gcr.io/triggermesh/memory-broker"),
        buffer_size=int(os.getenv("MESHCTL_BROKER_BUFFER_SIZE", "100")),
        produce_timeout=os.getenv("MESHCTL_BROKER_PRODUCE_TIMEOUT", "1s"),
        config_polling_period=os.getenv("MESHCTL_BROKER_CONFIG_POLLING_PERIOD") or None,
    )
    docker = DockerSettings(
        readiness_interval=float(os.getenv("MESHCTL_DOCKER_READINESS_INTERVAL", "1")),
        readiness_retries=int(os.getenv("MESHCTL_DOCKER_READINESS_RETRIES", "10")),
        startup_log_wait=float(os.getenv("MESHCTL_DOCKER_STARTUP_LOG_WAIT", "2")),
    )
    catalog = CatalogSettings()
    if url := os.getenv("MESHCTL_CATALOG_URL"):
        catalog = CatalogSettings(url_template=url)

    settings = Settings(
        context=os.getenv("MESHCTL_CONTEXT", ""),
        components_version=os.getenv("MESHCTL_COMPONENTS_VERSION", "v1.23.0"),
        registry=os.getenv("MESHCTL_REGISTRY", "gcr.io/triggermesh"),
        adapter_log_level=os.getenv("MESHCTL_ADAPTER_LOG_LEVEL", "error"),
        metrics_enabled=_env_bool("MESHCTL_METRICS_ENABLED"),
        broker=broker,
        docker=docker,
        catalog=catalog,
    )
    if home:
        settings = settings.model_copy(update={"config_home": Path(home).expanduser()})
    logger.debug(f"[settings] Loaded settings, config_home={settings.config_home}")
    return settings


@lru_cache()
def get_settings() -> Settings:
    """
    Get settings from the environment.

    Uses lru_cache for singleton pattern. Only entry points call this.
    """
    return load_settings()
