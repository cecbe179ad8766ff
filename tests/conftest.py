"""
Pytest configuration and fixtures for meshctl tests.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add the repository root to path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from meshctl.components import Broker, HandlerRegistry  # noqa: E402
from meshctl.config import DockerSettings, Settings  # noqa: E402
from meshctl.docker import Supervisor  # noqa: E402
from meshctl.schema import Catalog  # noqa: E402

FIXTURES = Path(__file__).parent / "fixtures"


# =============================================================================
# Fake Docker engine
# =============================================================================


class FakeStream:
    """Stands in for the SDK's CancellableStream."""

    def __init__(self, items):
        self._items = iter(items)
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        if self.closed:
            raise StopIteration
        return next(self._items)

    def close(self):
        self.closed = True


class FakeContainer:
    def __init__(self, engine, name, image, status="running", host_port=None, logs=b"", env=()):
        self.engine = engine
        self.name = name
        self.id = f"id-{name}"
        self.status = status
        self.startup_logs = logs
        self.log_lines = [b"line one\n", b"line two\n"]
        self.logs_kwargs = None
        self.kwargs = {}
        bindings = {}
        if host_port is not None:
            bindings["8080/tcp"] = [{"HostIp": "0.0.0.0", "HostPort": str(host_port)}]
        self.attrs = {
            "Id": self.id,
            "Name": f"/{name}",
            "Config": {"Image": image, "Env": ["PATH=/usr/bin", *env]},
            "State": {"Status": status},
            "HostConfig": {"PortBindings": bindings},
        }

    def _set_status(self, status):
        self.status = status
        self.attrs["State"]["Status"] = status

    def start(self):
        self._set_status("running")

    def reload(self):
        pass

    def remove(self, force=False, v=False):
        self.engine.removed.append(self.name)
        self.engine.items.remove(self)

    def logs(self, **kwargs):
        self.logs_kwargs = kwargs
        if kwargs.get("stream"):
            stream = FakeStream(list(self.log_lines))
            self.engine.streams.append(stream)
            return stream
        return self.startup_logs


class FakeContainers:
    def __init__(self, engine):
        self.engine = engine

    def list(self, all=False, filters=None):
        name = (filters or {}).get("name", "")
        return [c for c in self.engine.items if name in c.name]

    def create(self, **kwargs):
        port = None
        for _, binding in (kwargs.get("ports") or {}).items():
            port = binding[1]
        container = FakeContainer(
            self.engine,
            kwargs["name"],
            kwargs["image"],
            status="created",
            host_port=port,
            logs=self.engine.startup_logs,
            env=kwargs.get("environment", ()),
        )
        container.kwargs = kwargs
        self.engine.items.append(container)
        self.engine.created.append(container)
        return container


class FakeAPI:
    def __init__(self, engine):
        self.engine = engine
        self.pulled = []
        self.events = [{"status": "Pulling fs layer"}, {"status": "Download complete"}]
        self.pull_error = None
        self.last_stream = None

    def pull(self, image, stream=False, decode=False):
        if self.pull_error is not None:
            raise self.pull_error
        self.pulled.append(image)
        self.last_stream = FakeStream(list(self.events))
        return self.last_stream


class FakeDockerClient:
    """The subset of docker.DockerClient the supervisor uses."""

    def __init__(self):
        self.items = []
        self.created = []
        self.removed = []
        self.streams = []
        self.startup_logs = b""
        self.containers = FakeContainers(self)
        self.api = FakeAPI(self)

    def ping(self):
        return True

    def add(self, name, image, status="running", host_port=None, env=()):
        container = FakeContainer(self, name, image, status=status, host_port=host_port, env=env)
        self.items.append(container)
        return container


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def catalog():
    """CRD catalog loaded from the test bundle."""
    return Catalog.from_file(FIXTURES / "crd.yaml", "v1.23.0")


@pytest.fixture
def handlers(catalog):
    """Handler registry with the built-in overrides."""
    return HandlerRegistry.from_catalog(catalog)


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temp directory with fast readiness probes."""
    return Settings(
        config_home=tmp_path / "meshctl",
        context="demo",
        docker=DockerSettings(readiness_interval=0.01, readiness_retries=3, startup_log_wait=0),
    )


@pytest.fixture
def component_kwargs(catalog, handlers, settings):
    """Keyword arguments shared by catalog-backed components."""
    return {"catalog": catalog, "handlers": handlers, "settings": settings}


@pytest.fixture
def broker(settings):
    """An initialized broker directory for the "demo" broker."""
    demo = Broker("demo", settings)
    demo.initialize()
    return demo


@pytest.fixture
def docker_client():
    """In-memory Docker engine."""
    return FakeDockerClient()


@pytest.fixture
def supervisor(settings, docker_client):
    """Supervisor over the fake engine with readiness probing disabled."""
    sup = Supervisor(settings.docker, client=docker_client)
    sup.wait_ready = AsyncMock()
    return sup
