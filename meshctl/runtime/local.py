"""
Local runtime: user actions over one broker.

Each action follows the same path:

    build or look up a Component
      -> render its declarative object (schema-validated)
      -> write it through the Manifest
      -> if runnable, hand its RuntimeParams to the Supervisor

Trigger changes go through apply_trigger_change() so the manifest and
the routing config move together.

Usage:
    runtime = LocalRuntime(settings, catalog)
    await runtime.create_broker("demo")
    await runtime.create_source("webhook", {"eventType": "io.example.ping"})
    await runtime.create_target("cloudevents", {...}, source="demo-webhooksource")
    await runtime.start_all()
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

from meshctl.components import (
    BROKER_KIND,
    SECRET_KIND,
    Broker,
    Component,
    Consumer,
    EventAttributes,
    HandlerRegistry,
    Parent,
    Producer,
    Role,
    Runnable,
    Service,
    Source,
    Target,
    Transformation,
    broker_container_name,
    broker_ref,
)
from meshctl.config.schemas import Settings
from meshctl.docker.container import ContainerHandle, ContainerStatus
from meshctl.docker.supervisor import Supervisor
from meshctl.errors import ComponentError, ContainerError
from meshctl.kubernetes.manifest import Manifest
from meshctl.kubernetes.object import CONTEXT_LABEL, USER_INPUT_TAG, Object
from meshctl.routing.apply import apply_trigger_change
from meshctl.routing.config import LocalTarget, RoutingConfigFile
from meshctl.routing.filters import Filter, exact_attribute
from meshctl.routing.trigger import TRIGGER_KIND, Trigger, target_url
from meshctl.runtime.objects import component_from_object, secret_env
from meshctl.schema.catalog import Catalog
from meshctl.schema.secrets import encode, secret_name
from meshctl.schema.values import SpecMap

logger = logging.getLogger(__name__)

Prompt = Callable[[str, str], str]
LogSink = Callable[[str, str], None]


@dataclass
class ComponentDescription:
    """One row of describe() output."""

    name: str
    kind: str
    status: str = ""
    host_port: int | None = None
    produced_types: list[str] = field(default_factory=list)
    accepted_types: list[str] = field(default_factory=list)
    filters: list[dict[str, Any]] = field(default_factory=list)
    target: str = ""


class LocalRuntime:
    """
    Orchestrates components of one broker on the local container engine.

    Args:
        settings: meshctl settings; settings.context is the default broker
        catalog: CRD catalog for settings.components_version
        handlers: Kind handler registry (built from the catalog if omitted)
        supervisor: Container supervisor (Docker from the environment if omitted)
        broker: Broker to operate on, overrides settings.context
    """

    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        *,
        handlers: HandlerRegistry | None = None,
        supervisor: Supervisor | None = None,
        broker: str | None = None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.handlers = handlers or HandlerRegistry.from_catalog(catalog)
        self.supervisor = supervisor or Supervisor(settings.docker)
        self.broker = broker or settings.context

    # ==================== Helpers ====================

    def _require_broker(self) -> str:
        if not self.broker:
            raise ComponentError("no broker selected, create one first")
        return self.broker

    def manifest(self) -> Manifest:
        return Manifest.load(self.settings.manifest_path(self._require_broker()))

    def routing(self) -> RoutingConfigFile:
        return RoutingConfigFile(self.settings.routing_config_path(self._require_broker()))

    def _component_kwargs(self) -> dict[str, Any]:
        return {"catalog": self.catalog, "handlers": self.handlers, "settings": self.settings}

    def component(self, name: str, manifest: Manifest | None = None) -> Component:
        manifest = manifest or self.manifest()
        obj = manifest.get(name)
        if obj is None:
            raise ComponentError("does not exist", name)
        return self._from_object(obj)

    def _from_object(self, obj: Object) -> Component:
        routing = self.routing().read() if obj.kind == TRIGGER_KIND else None
        return component_from_object(obj, routing=routing, **self._component_kwargs())

    def _persist(self, manifest: Manifest, component: Component) -> bool:
        """Render component and children first, then write; an invalid spec writes nothing."""
        obj = component.as_object()
        children = component.children() if isinstance(component, Parent) else []
        changed = False
        for child in children:
            changed |= manifest.add(child.as_object())
        changed |= manifest.add(obj)
        if changed:
            manifest.write()
        logger.info(f"[runtime] {component.kind} {component.name} {'written' if changed else 'unchanged'}")
        return changed

    async def _broker_url(self) -> str:
        port = await self.supervisor.host_port(broker_container_name(self._require_broker()))
        return target_url(port)

    async def _run(self, component: Component, manifest: Manifest, restart: bool, sink: str | None) -> ContainerHandle:
        env = secret_env(component, manifest)
        if sink and not isinstance(component, Broker):
            if not isinstance(component, Service) or component.role is Role.SOURCE:
                env["K_SINK"] = sink
        return await self.supervisor.start(component.as_runtime_params(env), restart)

    # ==================== Create ====================

    async def create_broker(self, name: str, restart: bool = False) -> ContainerHandle:
        broker = Broker(name, self.settings)
        broker.initialize()
        self.broker = name
        manifest = self.manifest()
        if manifest.add(broker.as_object()):
            manifest.write()
        return await self.supervisor.start(broker.as_runtime_params(), restart)

    async def create_source(
        self,
        kind: str,
        spec: SpecMap,
        name: str | None = None,
        restart: bool = False,
    ) -> ContainerHandle:
        manifest = self.manifest()
        source = Source(name, self._require_broker(), kind, spec, **self._component_kwargs())
        self._persist(manifest, source)
        return await self._run(source, manifest, restart, await self._broker_url())

    async def create_target(
        self,
        kind: str,
        spec: SpecMap,
        name: str | None = None,
        *,
        event_types: Iterable[str] = (),
        source: str | None = None,
        restart: bool = False,
    ) -> ContainerHandle:
        manifest = self.manifest()
        target = Target(name, self._require_broker(), kind, spec, **self._component_kwargs())
        self._persist(manifest, target)
        handle = await self._run(target, manifest, restart, await self._broker_url())
        if event_types or source:
            await self.create_trigger(target.name, event_types=event_types, source=source)
        return handle

    async def create_transformation(
        self,
        spec: SpecMap,
        name: str | None = None,
        *,
        produces: EventAttributes | None = None,
        event_types: Iterable[str] = (),
        source: str | None = None,
        target: str | None = None,
        restart: bool = False,
    ) -> ContainerHandle:
        """
        Create a transformation, optionally wired on both sides.

        Incoming events are selected by event_types/source; outgoing
        events (typed by produces) are routed to target.
        """
        manifest = self.manifest()
        transformation = Transformation(name, self._require_broker(), spec, **self._component_kwargs())
        if produces is not None:
            transformation.set_event_attributes(produces)
        self._persist(manifest, transformation)
        handle = await self._run(transformation, manifest, restart, await self._broker_url())
        if event_types or source:
            await self.create_trigger(transformation.name, event_types=event_types, source=source)
        if target:
            await self.create_trigger(target, source=transformation.name)
        return handle

    async def create_service(
        self,
        name: str,
        image: str,
        params: dict[str, str] | None = None,
        role: Role | str = Role.TARGET,
        *,
        event_types: Iterable[str] = (),
        source: str | None = None,
        restart: bool = False,
    ) -> ContainerHandle:
        manifest = self.manifest()
        service = Service(name, self._require_broker(), image, params, role)
        self._persist(manifest, service)
        handle = await self._run(service, manifest, restart, await self._broker_url())
        if service.role is Role.TARGET and (event_types or source):
            await self.create_trigger(service.name, event_types=event_types, source=source)
        return handle

    def producer_event_types(self, name: str, manifest: Manifest | None = None) -> list[str]:
        component = self.component(name, manifest)
        if not isinstance(component, Producer):
            raise ComponentError("is not an event producer", name)
        types = component.event_types()
        if not types:
            raise ComponentError("does not expose its event types", name)
        return types

    async def create_trigger(
        self,
        target: str,
        *,
        event_types: Iterable[str] = (),
        source: str | None = None,
        name: str | None = None,
        filters: list[Filter] | None = None,
    ) -> list[Trigger]:
        """
        Route events to a consumer.

        One trigger is created per event type, each with an exact type
        filter. Explicit filters create a single trigger instead.
        """
        manifest = self.manifest()
        component = self.component(target, manifest)
        if not isinstance(component, Consumer) or not isinstance(component, Runnable):
            raise ComponentError("is not an event target", target)

        types = list(event_types)
        if source:
            types += self.producer_event_types(source, manifest)

        filter_sets: list[list[Filter]]
        if filters is not None:
            filter_sets = [filters]
        elif types:
            filter_sets = [[exact_attribute("type", t)] for t in dict.fromkeys(types)]
        else:
            filter_sets = [[]]

        port = await self.supervisor.host_port(component.container_name(), component.exposed_port())
        ref = {"kind": component.kind, "name": component.name, "apiVersion": component.api_version}
        triggers = []
        for filter_set in filter_sets:
            trigger = Trigger(
                name if len(filter_sets) == 1 else None,
                self._require_broker(),
                filter_set,
                target=LocalTarget(component=component.name),
            )
            trigger.set_target(component.name, port, ref)
            triggers.append(trigger)

        apply_trigger_change(manifest, self.routing(), upserts=triggers)
        return triggers

    # ==================== Delete ====================

    async def _stop_quietly(self, component: Component) -> None:
        if not isinstance(component, Runnable):
            return
        try:
            await self.supervisor.stop(component.container_name())
        except ContainerError as e:
            logger.warning(f"[runtime] Stopping {component.name} failed, continuing: {e}")

    async def delete(self, names: Iterable[str]) -> None:
        """
        Delete components by name.

        Deleting a target cascades to every trigger pointing at it;
        deleting a parent removes its Secret.
        """
        for name in names:
            manifest = self.manifest()
            obj = manifest.get(name)
            if obj is None:
                logger.warning(f"[runtime] {name} does not exist, skipping")
                continue
            if obj.kind == BROKER_KIND:
                await self.delete_broker(name)
                continue
            routing = self.routing()
            if obj.kind == TRIGGER_KIND:
                apply_trigger_change(manifest, routing, removals=[name])
                continue

            await self._stop_quietly(self._from_object(obj))
            cascade = routing.read().triggers_for_target(name)
            manifest.remove(secret_name(name), SECRET_KIND)
            manifest.remove(name, obj.kind)
            if cascade:
                apply_trigger_change(manifest, routing, removals=cascade)
            else:
                manifest.write()
            logger.info(f"[runtime] Deleted {obj.kind} {name} (triggers removed: {cascade})")

    async def delete_broker(self, name: str) -> None:
        """Stop every container of the broker and remove its directory."""
        path = self.settings.manifest_path(name)
        if path.exists():
            for obj in Manifest.load(path):
                if obj.kind in (BROKER_KIND, TRIGGER_KIND, SECRET_KIND):
                    continue
                await self._stop_quietly(self._from_object(obj))
        await self._stop_quietly(Broker(name, self.settings))
        shutil.rmtree(self.settings.broker_dir(name), ignore_errors=True)
        if self.broker == name:
            self.broker = ""
        logger.info(f"[runtime] Deleted broker {name}")

    # ==================== Describe ====================

    async def describe(self) -> list[ComponentDescription]:
        manifest = self.manifest()
        routing = self.routing().read()
        rows = []
        for obj in manifest:
            if obj.kind == SECRET_KIND:
                continue
            component = component_from_object(obj, routing=routing, **self._component_kwargs())
            row = ComponentDescription(name=obj.name, kind=obj.kind)
            if isinstance(component, Trigger):
                row.filters = [f.to_dict() for f in component.filters]
                row.target = component.target.component
                rows.append(row)
                continue
            if isinstance(component, Runnable):
                status = await self.supervisor.status(component.container_name())
                row.status = status.value
                if status is ContainerStatus.RUNNING:
                    row.host_port = (await self.supervisor.info(component.container_name())).host_port
            if isinstance(component, Producer):
                row.produced_types = component.event_types()
            if isinstance(component, Consumer):
                row.accepted_types = component.consumed_event_types()
            rows.append(row)
        return rows

    # ==================== Start / stop ====================

    async def start_all(self, restart: bool = False) -> dict[str, ContainerHandle]:
        """
        Start the broker, then every other runnable component concurrently.

        Any failure cancels the remaining starts and propagates. Trigger
        URLs are refreshed afterwards since recreated containers get new
        host ports.
        """
        broker_name = self._require_broker()
        manifest = self.manifest()
        broker = Broker(broker_name, self.settings)
        handles = {broker_name: await self.supervisor.start(broker.as_runtime_params(), restart=True)}
        sink = target_url(handles[broker_name].host_port)

        components = [
            self._from_object(obj)
            for obj in manifest
            if obj.kind not in (BROKER_KIND, TRIGGER_KIND, SECRET_KIND)
        ]
        tasks = [
            asyncio.create_task(self._run(c, manifest, restart, sink), name=c.name)
            for c in components
            if isinstance(c, Runnable)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        handles.update({task.get_name(): handle for task, handle in zip(tasks, results)})
        self._refresh_trigger_urls(manifest, handles)
        return handles

    def _refresh_trigger_urls(self, manifest: Manifest, handles: dict[str, ContainerHandle]) -> None:
        routing = self.routing()
        config = routing.read()
        updates = []
        for name, local in config.triggers.items():
            handle = handles.get(local.target.component)
            if handle is None or handle.host_port is None:
                continue
            url = target_url(handle.host_port)
            if local.target.url == url:
                continue
            obj = manifest.get(name, TRIGGER_KIND)
            trigger = Trigger.from_object(obj, config) if obj is not None else Trigger.from_local(name, self.broker, local)
            trigger.target = local.target.model_copy(update={"url": url})
            updates.append(trigger)
        if updates:
            apply_trigger_change(manifest, routing, upserts=updates)

    async def stop_all(self) -> None:
        manifest = self.manifest()
        for obj in manifest:
            if obj.kind in (TRIGGER_KIND, SECRET_KIND):
                continue
            await self._stop_quietly(self._from_object(obj))

    # ==================== Logs ====================

    async def follow_logs(self, names: Iterable[str], stop: asyncio.Event, sink: LogSink) -> None:
        """
        Stream logs of the named components into sink(name, line) until
        stop is set or every stream ends.
        """
        manifest = self.manifest()
        streams = []
        for name in names:
            component = self.component(name, manifest)
            if not isinstance(component, Runnable):
                continue
            streams.append((name, await self.supervisor.logs(component.container_name(), follow=True)))

        async def pump(name: str, stream: Any) -> None:
            while True:
                chunk = await asyncio.to_thread(next, stream, None)
                if chunk is None:
                    return
                for line in chunk.decode(errors="replace").splitlines():
                    sink(name, line)

        tasks = {asyncio.create_task(pump(name, stream), name=name) for name, stream in streams}
        waiter = asyncio.create_task(stop.wait())
        pending = set(tasks)
        try:
            while pending and not stop.is_set():
                done, pending = await asyncio.wait(pending | {waiter}, return_when=asyncio.FIRST_COMPLETED)
                pending.discard(waiter)
                for task in done:
                    if task is not waiter:
                        task.result()
        finally:
            for _, stream in streams:
                stream.close()
            waiter.cancel()
            for task in tasks:
                task.cancel()
            await asyncio.gather(waiter, *tasks, return_exceptions=True)

    # ==================== Import ====================

    def import_manifest(self, path: Path | str, prompt: Prompt | None = None) -> Manifest:
        """
        Import a manifest exported from another broker into the current one.

        The broker context is renamed, every "<user_input>" placeholder is
        filled through prompt(object name, property path) (Secret values
        are base64-encoded), and every Trigger is registered in the
        routing config. Components are rebuilt from their objects, so
        specs are validated and inline secrets detached before anything
        is written. Containers are not started.
        """
        broker_name = self._require_broker()
        imported = Manifest.load(path)

        objects: list[Object] = []
        triggers = []
        for obj in imported:
            if obj.kind == BROKER_KIND:
                continue
            obj = self._fill_placeholders(self._rebase(obj, broker_name), prompt)
            if obj.kind == TRIGGER_KIND:
                triggers.append(Trigger.from_object(obj))
            elif obj.kind == SECRET_KIND:
                objects.append(obj)
            else:
                component = component_from_object(obj, **self._component_kwargs())
                children = component.children() if isinstance(component, Parent) else []
                objects.extend(child.as_object() for child in children)
                objects.append(component.as_object())

        broker = Broker(broker_name, self.settings)
        broker.initialize()
        manifest = self.manifest()
        manifest.add(broker.as_object())
        for obj in objects:
            manifest.add(obj)
        manifest.write()
        if triggers:
            apply_trigger_change(manifest, self.routing(), upserts=triggers)
        logger.info(f"[runtime] Imported {len(imported)} objects from {path} into {broker_name}")
        return manifest

    @staticmethod
    def _rebase(obj: Object, broker: str) -> Object:
        obj = obj.model_copy(deep=True)
        obj.metadata.labels[CONTEXT_LABEL] = broker
        sink = obj.spec.get("sink")
        if isinstance(sink, dict) and isinstance(sink.get("ref"), dict) and sink["ref"].get("kind") == BROKER_KIND:
            sink["ref"] = broker_ref(broker)
        if obj.kind == TRIGGER_KIND and isinstance(obj.spec.get("broker"), dict):
            obj.spec["broker"]["name"] = broker
        return obj

    @staticmethod
    def _fill_placeholders(obj: Object, prompt: Prompt | None) -> Object:
        def ask(path: str) -> str:
            if prompt is None:
                raise ComponentError(f"{path} requires user input", obj.name)
            return prompt(obj.name, path)

        def walk(node: Any, path: str) -> Any:
            if isinstance(node, dict):
                return {k: walk(v, f"{path}.{k}" if path else k) for k, v in node.items()}
            if isinstance(node, list):
                return [walk(v, f"{path}[{i}]") for i, v in enumerate(node)]
            if node == USER_INPUT_TAG:
                return ask(path)
            return node

        spec = walk(obj.spec, "")
        data = {}
        for key, value in obj.data.items():
            data[key] = encode(ask(key)) if value == USER_INPUT_TAG else value
        return obj.model_copy(update={"spec": spec, "data": data})
