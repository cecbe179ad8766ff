"""
Container Lifecycle Supervisor.

Keeps exactly one container per component in the state implied by its
runtime parameters:

    not found            -> pull, create, start, wait until ready
    running, no restart  -> return as is (idempotent)
    running, restart     -> remove, recreate
    exited / dead        -> remove, recreate
    image changed        -> remove, recreate
    environment changed  -> remove, recreate

Container state is owned by the engine; nothing is cached between
calls. The Docker SDK is synchronous, so every engine call runs in a
worker thread to keep the event loop free for readiness probes and
concurrent starts.

Usage:
    supervisor = Supervisor(settings.docker)
    handle = await supervisor.start(broker.as_runtime_params(), restart=True)
    print(handle.host_port)
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

import docker
from docker.errors import APIError, NotFound

from meshctl.components.base import RuntimeParams
from meshctl.config.schemas import DockerSettings
from meshctl.docker.container import ContainerHandle, ContainerStatus
from meshctl.errors import (
    ContainerError,
    ContainerNotFoundError,
    ContainerStartupError,
    ImagePullError,
    ReadinessTimeoutError,
)

logger = logging.getLogger(__name__)

ERROR_LEVELS = ("error", "fatal", "alert", "panic")
LOGS_WINDOW = timedelta(hours=24)


def free_port() -> int:
    """Ask the OS for a currently free TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", 0))
        return sock.getsockname()[1]


def _env_drifted(attrs: dict[str, Any], environment: tuple[str, ...] | list[str]) -> bool:
    """
    True when a requested NAME=value entry is missing from the container's env.

    The engine merges the image's own env into Config.Env, so only the
    requested entries are compared.
    """
    current = set((attrs.get("Config") or {}).get("Env") or [])
    return not set(environment) <= current


class Supervisor:
    """
    Idempotent container lifecycle over a Docker engine.

    Args:
        settings: Readiness and startup tuning
        client: Docker client; created from the environment on first use
    """

    def __init__(self, settings: DockerSettings | None = None, client: docker.DockerClient | None = None):
        self._settings = settings or DockerSettings()
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env(timeout=self._settings.api_timeout)
            except docker.errors.DockerException as e:
                raise ContainerError(f"connecting to docker: {e}") from e
        return self._client

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.client.ping))
        except APIError as e:
            raise ContainerError(f"docker ping: {e}") from e

    # ==================== Lookup ====================

    def _lookup(self, name: str) -> Any | None:
        try:
            containers = self.client.containers.list(all=True, filters={"name": name})
        except APIError as e:
            raise ContainerError(f"listing containers: {e}", name) from e
        # the name filter is a substring match
        for container in containers:
            if container.name == name:
                return container
        return None

    async def status(self, name: str) -> ContainerStatus:
        container = await asyncio.to_thread(self._lookup, name)
        if container is None:
            return ContainerStatus.NOT_FOUND
        return ContainerStatus.parse(container.status)

    async def info(self, name: str, exposed_port: str | None = None) -> ContainerHandle:
        container = await asyncio.to_thread(self._lookup, name)
        if container is None:
            raise ContainerNotFoundError(name)
        return ContainerHandle.from_attrs(container.attrs, exposed_port)

    async def host_port(self, name: str, exposed_port: str | None = None) -> int:
        handle = await self.info(name, exposed_port)
        if handle.host_port is None:
            raise ContainerError("container has no published port", name)
        return handle.host_port

    # ==================== Lifecycle ====================

    async def start(self, params: RuntimeParams, restart: bool = False) -> ContainerHandle:
        """
        Ensure the container described by params is running.

        Raises:
            ImagePullError: the image could not be pulled
            ContainerError: the engine rejected create or start
            ReadinessTimeoutError: the port never accepted a connection
            ContainerStartupError: the container logged an error while starting
        """
        name = params.name
        container = await asyncio.to_thread(self._lookup, name)
        if container is not None:
            handle = ContainerHandle.from_attrs(container.attrs, params.exposed_port)
            image_changed = handle.image != params.image
            env_changed = _env_drifted(container.attrs, params.environment)
            if handle.running and not restart and not image_changed and not env_changed:
                logger.info(f"[supervisor] {name} already running on port {handle.host_port}")
                if handle.host_port is not None:
                    await self.wait_ready(name, handle.host_port)
                return handle
            if image_changed:
                reason = "image changed"
            elif env_changed:
                reason = "environment changed"
            else:
                reason = "restart" if restart else handle.status.value
            logger.info(f"[supervisor] Recreating {name} ({reason})")
            await self._remove(container, name)

        await self.pull(params.image)
        port = free_port() if params.host_port_binding else None
        container = await asyncio.to_thread(self._create_and_start, params, port)
        handle = ContainerHandle.from_attrs(container.attrs, params.exposed_port)
        logger.info(f"[supervisor] Started {name} ({params.image}) on port {handle.host_port}")

        if handle.host_port is not None:
            await self.wait_ready(name, handle.host_port)
        await self._check_startup_logs(container, name)
        return handle

    def _create_and_start(self, params: RuntimeParams, host_port: int | None) -> Any:
        kwargs: dict[str, Any] = {
            "image": params.image,
            "name": params.name,
            "environment": list(params.environment),
            "extra_hosts": dict(params.extra_hosts),
            "detach": True,
        }
        if host_port is not None:
            kwargs["ports"] = {params.exposed_port: ("0.0.0.0", host_port)}
        if params.volume_bindings:
            kwargs["volumes"] = list(params.volume_bindings)
        if params.entrypoint is not None:
            kwargs["entrypoint"] = list(params.entrypoint)
        try:
            container = self.client.containers.create(**kwargs)
            container.start()
            container.reload()
        except APIError as e:
            raise ContainerError(f"creating container: {e}", params.name) from e
        return container

    async def _remove(self, container: Any, name: str) -> None:
        try:
            await asyncio.to_thread(container.remove, force=True, v=True)
        except APIError as e:
            logger.warning(f"[supervisor] Removing {name} failed, continuing: {e}")

    async def stop(self, name: str) -> bool:
        """Force-remove the container. Returns False if it did not exist."""
        container = await asyncio.to_thread(self._lookup, name)
        if container is None:
            return False
        try:
            await asyncio.to_thread(container.remove, force=True, v=True)
        except NotFound:
            return False
        except APIError as e:
            raise ContainerError(f"removing container: {e}", name) from e
        logger.info(f"[supervisor] Stopped {name}")
        return True

    # ==================== Image pull ====================

    async def pull(self, image: str) -> None:
        """
        Pull an image, logging progress events.

        A missing remote image is tolerated so locally built images
        still run. The progress stream is closed on every exit path.
        """
        try:
            stream = await asyncio.to_thread(self.client.api.pull, image, stream=True, decode=True)
        except NotFound:
            logger.warning(f"[supervisor] Image {image} not found in registry, using local copy")
            return
        except APIError as e:
            raise ImagePullError(image, str(e)) from e

        try:
            while True:
                event = await asyncio.to_thread(next, stream, None)
                if event is None:
                    break
                if event.get("error"):
                    raise ImagePullError(image, event["error"])
                logger.debug(f"[supervisor] {image}: {event.get('status', '')} {event.get('progress', '')}".rstrip())
        except APIError as e:
            raise ImagePullError(image, str(e)) from e
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

    # ==================== Readiness ====================

    async def wait_ready(self, name: str, port: int, host: str = "127.0.0.1") -> None:
        """
        Poll a TCP connect until it succeeds or the retry budget runs out.

        Raises:
            ReadinessTimeoutError: port never accepted a connection
        """
        interval = self._settings.readiness_interval
        retries = self._settings.readiness_retries
        for attempt in range(1, retries + 1):
            try:
                _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=interval)
            except (OSError, asyncio.TimeoutError):
                logger.debug(f"[supervisor] {name} not ready on {port} (attempt {attempt}/{retries})")
                if attempt < retries:
                    await asyncio.sleep(interval)
                continue
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return
        raise ReadinessTimeoutError(name, port, retries)

    async def _check_startup_logs(self, container: Any, name: str) -> None:
        if self._settings.startup_log_wait > 0:
            await asyncio.sleep(self._settings.startup_log_wait)
        try:
            raw = await asyncio.to_thread(container.logs, stdout=True, stderr=True)
        except APIError as e:
            raise ContainerError(f"reading startup logs: {e}", name) from e
        for line in raw.decode(errors="replace").splitlines():
            try:
                entry = json.loads(line)
            except ValueError:
                continue
            if not isinstance(entry, dict):
                continue
            level = str(entry.get("level") or entry.get("severity") or "").lower()
            if level in ERROR_LEVELS:
                message = entry.get("msg") or entry.get("message") or line
                raise ContainerStartupError(name, level, str(message))

    # ==================== Logs ====================

    async def logs(self, name: str, follow: bool = False) -> Iterator[bytes]:
        """
        Open a stream over the container's stdout and stderr.

        Without follow, only the last 24 hours are returned. The caller
        closes the returned stream.
        """
        container = await asyncio.to_thread(self._lookup, name)
        if container is None:
            raise ContainerNotFoundError(name)
        kwargs: dict[str, Any] = {"stdout": True, "stderr": True, "stream": True, "follow": follow}
        if not follow:
            kwargs["since"] = datetime.now(timezone.utc) - LOGS_WINDOW
        try:
            return await asyncio.to_thread(container.logs, **kwargs)
        except APIError as e:
            raise ContainerError(f"opening logs: {e}", name) from e
