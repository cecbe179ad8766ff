"""
Tests for settings loading and path layout.
"""

from pathlib import Path

import pytest

from meshctl.config import Settings, get_settings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "MESHCTL_CONFIG_HOME",
        "MESHCTL_CONTEXT",
        "MESHCTL_COMPONENTS_VERSION",
        "MESHCTL_METRICS_ENABLED",
        "MESHCTL_BROKER_VERSION",
        "MESHCTL_BROKER_CONFIG_POLLING_PERIOD",
        "MESHCTL_CATALOG_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        settings = load_settings()

        assert settings.config_home == Path.home() / ".meshctl"
        assert settings.components_version == "v1.23.0"
        assert settings.broker.image_ref == "gcr.io/triggermesh/memory-broker:v1.1.0"
        assert settings.broker.config_polling_period is None
        assert settings.metrics_enabled is False

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MESHCTL_CONFIG_HOME", str(tmp_path))
        monkeypatch.setenv("MESHCTL_CONTEXT", "demo")
        monkeypatch.setenv("MESHCTL_METRICS_ENABLED", "1")
        monkeypatch.setenv("MESHCTL_BROKER_CONFIG_POLLING_PERIOD", "PT5S")
        monkeypatch.setenv("MESHCTL_CATALOG_URL", "https://mirror.example.com/${VERSION}/crds.yaml")

        settings = load_settings()

        assert settings.config_home == tmp_path
        assert settings.context == "demo"
        assert settings.metrics_enabled is True
        assert settings.broker.config_polling_period == "PT5S"
        assert settings.catalog.url_template.startswith("https://mirror.example.com/")

    def test_paths(self, tmp_path):
        settings = Settings(config_home=tmp_path, context="demo")

        assert settings.manifest_path() == tmp_path / "demo" / "manifest.yaml"
        assert settings.routing_config_path("other") == tmp_path / "other" / "broker.conf"
        assert settings.crd_cache_path() == tmp_path / "crd" / "v1.23.0" / "crd.yaml"

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()
