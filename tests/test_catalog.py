"""
Tests for the CRD catalog.

Tests for:
- Catalog lookups and schema caching
- CatalogFetcher download, cache and version resolution
"""

from pathlib import Path

import httpx
import pytest

from meshctl.errors import CatalogError, KindNotFoundError
from meshctl.schema import Catalog, CatalogFetcher

FIXTURES = Path(__file__).parent / "fixtures"


class TestCatalog:
    def test_lookup_is_case_insensitive(self, catalog):
        """Kinds resolve regardless of case."""
        assert catalog.get("HTTPTarget").resource_kind == "HTTPTarget"
        assert catalog.get("httptarget") is catalog.get("HttpTarget")
        assert "AWSS3Source" in catalog

    def test_unknown_kind(self, catalog):
        """Unknown kinds raise KindNotFoundError."""
        with pytest.raises(KindNotFoundError) as exc_info:
            catalog.get("nosuchsource")
        assert "nosuchsource" in str(exc_info.value)

    def test_groups(self, catalog):
        """Sources and targets are listed by API group."""
        assert catalog.sources() == ["awss3source", "webhooksource"]
        assert catalog.targets() == ["httptarget", "kafkatarget"]

    def test_first_served_version(self, catalog):
        """The API version comes from the first served version."""
        assert catalog.schema("kafkatarget").api_version == "targets.triggermesh.io/v1alpha1"
        assert catalog.schema("transformation").api_version == "flow.triggermesh.io/v1alpha1"

    def test_schema_cached(self, catalog):
        """A kind's schema is parsed once."""
        assert catalog.schema("httptarget") is catalog.schema("HTTPTarget")

    def test_event_types(self, catalog):
        """Produced and accepted types come from CRD annotations."""
        assert catalog.get("awss3source").produced_event_types() == [
            "com.amazon.s3.objectcreated",
            "com.amazon.s3.objectremoved",
        ]
        assert catalog.get("kafkatarget").accepted_event_types() == ["io.triggermesh.kafka.event"]
        assert catalog.get("transformation").produced_event_types() == []

    def test_malformed_bundle(self):
        """Invalid documents raise CatalogError."""
        with pytest.raises(CatalogError):
            Catalog.from_yaml("kind: CustomResourceDefinition\nspec: {}\n")

    def test_missing_file(self, tmp_path):
        """Missing bundle files raise CatalogError."""
        with pytest.raises(CatalogError):
            Catalog.from_file(tmp_path / "nope.yaml")


class TestCatalogFetcher:
    @pytest.fixture
    def bundle(self):
        return (FIXTURES / "crd.yaml").read_bytes()

    @pytest.mark.asyncio
    async def test_download_and_cache(self, settings, bundle):
        """The bundle is downloaded once and cached by version."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            return httpx.Response(200, content=bundle)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = CatalogFetcher(settings, client=client)
            catalog = await fetcher.fetch("v1.23.0")
            again = await fetcher.fetch("v1.23.0")

        assert requests == [
            "https://github.com/triggermesh/triggermesh/releases/download/v1.23.0/triggermesh-crds.yaml"
        ]
        assert settings.crd_cache_path("v1.23.0").exists()
        assert catalog.version == "v1.23.0"
        assert "httptarget" in again

    @pytest.mark.asyncio
    async def test_latest_resolves_tag(self, settings, bundle):
        """The "latest" version is resolved through the releases API."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "api.github.com":
                return httpx.Response(200, json={"tag_name": "v1.24.0"})
            return httpx.Response(200, content=bundle)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            catalog = await CatalogFetcher(settings, client=client).fetch("latest")

        assert catalog.version == "v1.24.0"
        assert settings.crd_cache_path("v1.24.0").exists()

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self, settings):
        """Download failures raise CatalogError and leave no cache file."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CatalogError):
                await CatalogFetcher(settings, client=client).fetch("v0.0.1")

        assert not settings.crd_cache_path("v0.0.1").exists()
