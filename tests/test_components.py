"""
Tests for components: rendering objects, children and runtime params.
"""

import json

import pytest

from meshctl.components import (
    BROKER_KIND,
    Broker,
    Consumer,
    EventAttributes,
    GenericHandler,
    HandlerRegistry,
    Parent,
    Producer,
    Role,
    Runnable,
    Secret,
    Service,
    Source,
    Target,
    Transformation,
    broker_ref,
)
from meshctl.components.handlers import UnsupportedHandler, context_attribute
from meshctl.components.registry import EnvVar, env_name, flatten_spec
from meshctl.errors import ComponentError, KindNotFoundError, SpecError, UnknownPropertyError


@pytest.fixture
def webhook(component_kwargs):
    return Source(
        None,
        "demo",
        "webhook",
        {"eventType": "io.example.ping", "basicAuthPassword": "foo"},
        **component_kwargs,
    )


@pytest.fixture
def awss3(component_kwargs):
    return Source(
        None,
        "demo",
        "awss3",
        {
            "arn": "arn:aws:s3:::bucket",
            "auth": {"credentials": {"accessKeyID": "foo", "secretAccessKey": "bar"}},
        },
        **component_kwargs,
    )


# =============================================================================
# Registry
# =============================================================================


class TestHandlerRegistry:
    def test_env_name(self):
        assert env_name(["auth", "accessKeyID"]) == "AUTH_ACCESS_KEY_ID"
        assert env_name(["bootstrapServers"]) == "BOOTSTRAP_SERVERS"

    def test_flatten_spec(self):
        """Scalars become strings, scalar lists are comma-joined, refs stay refs."""
        env = flatten_spec(
            {
                "topic": "t",
                "servers": ["a", "b"],
                "enabled": True,
                "password": {"valueFromSecret": {"name": "s", "key": "password"}},
                "skipped": None,
            }
        )
        assert env == [
            EnvVar("TOPIC", "t"),
            EnvVar("SERVERS", "a,b"),
            EnvVar("ENABLED", "true"),
            EnvVar("PASSWORD", secret_ref=("s", "password")),
        ]

    def test_from_catalog(self, catalog, handlers):
        """Every catalog kind is registered, overrides replace generic handlers."""
        for kind in catalog.kinds():
            assert kind in handlers
        assert handlers.get("AWSS3Source").image_name == "awssqssource"
        assert isinstance(handlers.get("awssnssource"), UnsupportedHandler)

    def test_unknown_kind_uses_default(self):
        registry = HandlerRegistry()
        assert isinstance(registry.get("whatever"), GenericHandler)
        assert registry.list_kinds() == []

    def test_register_rejects_non_handlers(self):
        registry = HandlerRegistry()
        with pytest.raises(ValueError):
            registry.register("bad", object())

    def test_unsupported_kind(self, handlers, webhook):
        """Multitenant kinds refuse to render an environment."""
        obj = webhook.as_object().model_copy(update={"kind": "AWSSNSSource"})
        with pytest.raises(ComponentError) as exc_info:
            handlers.get("awssnssource").build_env(obj)
        assert "multitenant" in str(exc_info.value)

    def test_context_attribute(self):
        spec = {
            "context": [
                {"operation": "delete", "paths": [{"key": "type"}]},
                {"operation": "add", "paths": [{"key": "type", "value": "first"}]},
                {"operation": "add", "paths": [{"key": "type", "value": "last"}]},
            ]
        }
        assert context_attribute(spec, "type") == "last"
        assert context_attribute(spec, "source") == ""


# =============================================================================
# Sources
# =============================================================================


class TestSource:
    def test_default_name(self, webhook):
        assert webhook.name == "demo-webhooksource"
        assert webhook.kind == "WebhookSource"
        assert webhook.api_version == "sources.triggermesh.io/v1alpha1"

    def test_object_sinks_into_broker(self, webhook):
        obj = webhook.as_object()
        assert obj.spec["sink"] == {"ref": broker_ref("demo")}
        assert obj.broker == "demo"

    def test_secret_moved_to_child(self, webhook):
        """The plaintext never reaches the object, only the child Secret."""
        obj = webhook.as_object()
        assert obj.spec["basicAuthPassword"] == {
            "valueFromSecret": {"name": "demo-webhooksource-secret", "key": "basicAuthPassword"}
        }
        assert "foo" not in json.dumps(obj.to_dict())

        (child,) = webhook.children()
        assert isinstance(child, Secret)
        assert child.name == "demo-webhooksource-secret"
        assert child.data == {"basicAuthPassword": "Zm9v"}
        assert child.decoded() == {"basicAuthPassword": "foo"}

    def test_no_secret_no_child(self, component_kwargs):
        source = Source("plain", "demo", "webhook", {"eventType": "io.x"}, **component_kwargs)
        assert source.children() == []

    def test_event_attributes_from_spec(self, webhook):
        assert webhook.event_types() == ["io.example.ping"]
        assert webhook.event_source() == "webhooksource.demo-webhooksource"

    def test_event_attributes_from_annotation(self, awss3):
        assert awss3.event_types() == ["com.amazon.s3.objectcreated", "com.amazon.s3.objectremoved"]

    def test_event_attributes_are_fixed(self, webhook):
        with pytest.raises(ComponentError):
            webhook.set_event_attributes(EventAttributes(produced_types=["x"]))

    def test_runtime_params(self, webhook):
        """Secret keys are resolved from the additional env and not leaked as extra vars."""
        params = webhook.as_runtime_params({"basicAuthPassword": "foo"})
        env = params.env_map()

        assert params.name == "demo-webhooksource"
        assert params.image == "gcr.io/triggermesh/webhooksource-adapter:v1.23.0"
        assert params.exposed_port == "8080/tcp"
        assert env["WEBHOOK_EVENT_TYPE"] == "io.example.ping"
        assert env["BASIC_AUTH_PASSWORD"] == "foo"
        assert "basicAuthPassword" not in env
        assert json.loads(json.loads(env["K_LOGGING_CONFIG"])["zap-logger-config"]) == {"level": "error"}
        assert "K_METRICS_CONFIG" not in env

    def test_missing_secret_value_is_unset(self, webhook):
        env = webhook.as_runtime_params().env_map()
        assert "BASIC_AUTH_PASSWORD" not in env

    def test_shared_image(self, awss3):
        params = awss3.as_runtime_params({"accessKeyID": "foo", "secretAccessKey": "bar"})
        env = params.env_map()

        assert params.image == "gcr.io/triggermesh/awssqssource-adapter:v1.23.0"
        assert env["ARN"] == "arn:aws:s3:::bucket"
        assert env["AUTH_CREDENTIALS_ACCESS_KEY_ID"] == "foo"
        assert env["AUTH_CREDENTIALS_SECRET_ACCESS_KEY"] == "bar"

    def test_k_sink_from_uri(self, webhook):
        webhook.spec["sink"] = {"uri": "http://ignored"}
        # a source always sinks into its broker by reference
        assert "K_SINK" not in webhook.as_runtime_params().env_map()

    def test_metrics(self, component_kwargs, settings):
        kwargs = {**component_kwargs, "settings": settings.model_copy(update={"metrics_enabled": True})}
        source = Source(None, "demo", "webhook", {"eventType": "io.x"}, **kwargs)
        env = source.as_runtime_params().env_map()
        assert env["METRICS_PROMETHEUS_PORT"] == "9092"
        assert json.loads(env["K_METRICS_CONFIG"])["Component"] == "webhooksource"

    def test_unknown_property(self, component_kwargs):
        source = Source(None, "demo", "webhook", {"eventType": "io.x", "bogus": "1"}, **component_kwargs)
        with pytest.raises(UnknownPropertyError) as exc_info:
            source.as_object()
        assert "basicAuthPassword" in exc_info.value.available

    def test_unknown_kind(self, component_kwargs):
        with pytest.raises(KindNotFoundError):
            Source(None, "demo", "nosuch", {}, **component_kwargs)


# =============================================================================
# Targets
# =============================================================================


class TestTarget:
    def test_wildcard_accepts_nothing_specific(self, component_kwargs):
        target = Target(None, "demo", "http", {"endpoint": "https://example.com", "method": "POST"}, **component_kwargs)
        assert target.name == "demo-httptarget"
        assert target.consumed_event_types() == []
        assert target.exposed_port() == "8080/tcp"

    def test_accepted_types_from_annotation(self, component_kwargs):
        target = Target(
            "kafka",
            "demo",
            "kafkatarget",
            {"topic": "t", "bootstrapServers": "a:9092,b:9092", "topicReplicationFactor": "3"},
            **component_kwargs,
        )
        assert target.consumed_event_types() == ["io.triggermesh.kafka.event"]
        assert target.api_version == "targets.triggermesh.io/v1alpha1"

        env = target.as_runtime_params().env_map()
        assert env["BOOTSTRAP_SERVERS"] == "a:9092,b:9092"
        assert env["TOPIC_REPLICATION_FACTOR"] == "3"
        assert target.as_object().spec["topicReplicationFactor"] == 3

    def test_adapter_overrides(self, component_kwargs):
        """Override env entries are appended verbatim, additional env wins last."""
        target = Target(
            None,
            "demo",
            "http",
            {
                "endpoint": "https://example.com",
                "method": "POST",
                "adapterOverrides": {"env": [{"name": "FOO", "value": "bar"}]},
            },
            **component_kwargs,
        )
        env = target.as_runtime_params({"ENDPOINT": "https://override"}).env_map()

        assert env["FOO"] == "bar"
        assert env["ENDPOINT"] == "https://override"
        assert not any(key.startswith("ADAPTER_OVERRIDES") for key in env)

    def test_invalid_spec(self, component_kwargs):
        target = Target(None, "demo", "http", {"endpoint": "ftp://example.com", "method": "POST"}, **component_kwargs)
        with pytest.raises(SpecError):
            target.as_object()

    def test_is_not_producer(self, component_kwargs):
        target = Target(None, "demo", "http", {"endpoint": "https://example.com", "method": "POST"}, **component_kwargs)
        assert isinstance(target, Consumer)
        assert isinstance(target, Runnable)
        assert not isinstance(target, Producer)


# =============================================================================
# Transformations and services
# =============================================================================


class TestTransformation:
    def test_set_event_attributes(self, component_kwargs):
        transformation = Transformation(None, "demo", {}, **component_kwargs)
        transformation.set_event_attributes(EventAttributes(produced_types=["io.out"], produced_source="demo"))

        assert transformation.name == "demo-transformation"
        assert transformation.event_types() == ["io.out"]
        assert transformation.event_source() == "demo"
        assert transformation.consumed_event_types() == []

    def test_env(self, component_kwargs):
        context = [{"operation": "add", "paths": [{"key": "type", "value": "io.out"}]}]
        transformation = Transformation("t", "demo", {"context": context}, **component_kwargs)

        env = transformation.as_runtime_params().env_map()

        assert json.loads(env["TRANSFORMATION_CONTEXT"]) == context
        assert json.loads(env["TRANSFORMATION_DATA"]) == []
        assert transformation.as_object().kind == "Transformation"
        assert isinstance(transformation, Producer)
        assert isinstance(transformation, Consumer)


class TestService:
    def test_source_role_object(self):
        service = Service("svc", "demo", "example/img:1", {"CE_TYPE": "a, b", "CE_SOURCE": "src"}, role="source")
        obj = service.as_object()

        (container,) = obj.spec["template"]["spec"]["containers"]
        assert container["image"] == "example/img:1"
        assert {"name": "K_SINK", "value": "http://demo-broker:8080"} in container["env"]
        assert obj.metadata.labels["triggermesh.io/role"] == "source"
        assert service.event_types() == ["a", "b"]
        assert service.event_source() == "src"

    def test_from_object(self):
        service = Service("svc", "demo", "example/img:1", {"FOO": "bar"}, role=Role.SOURCE)

        restored = Service.from_object(service.as_object())

        assert restored.params == {"FOO": "bar"}
        assert restored.role is Role.SOURCE
        assert restored.broker == "demo"

    def test_runtime_params(self):
        service = Service("svc", "demo", "example/img:1", {"FOO": "bar"})
        params = service.as_runtime_params({"K_SINK": "http://sink"})
        assert params.env_map() == {"FOO": "bar", "K_SINK": "http://sink"}

    def test_set_event_attributes(self):
        service = Service("svc", "demo", "example/img:1")
        service.set_event_attributes(EventAttributes(produced_types=["x", "y"], produced_source="s"))
        assert service.params == {"CE_TYPE": "x,y", "CE_SOURCE": "s"}

    def test_from_object_without_container(self):
        obj = Service("svc", "demo", "img").as_object().model_copy(update={"spec": {}})
        with pytest.raises(ComponentError):
            Service.from_object(obj)


class TestBroker:
    def test_object(self, settings):
        obj = Broker("demo", settings).as_object()
        assert obj.kind == BROKER_KIND
        assert obj.broker == "demo"
        assert obj.spec == {}

    def test_runtime_params(self, settings):
        broker = Broker("demo", settings)
        params = broker.as_runtime_params()

        assert params.name == "demo-broker"
        assert params.image == "gcr.io/triggermesh/memory-broker:v1.1.0"
        assert params.volume_bindings == (f"{broker.config_path}:/etc/triggermesh/broker.conf",)
        assert params.entrypoint[:2] == ("/memory-broker", "start")
        assert "--config-polling-period" not in params.entrypoint

    def test_polling_period(self, settings):
        settings.broker.config_polling_period = "PT2S"
        entrypoint = Broker("demo", settings).entrypoint()
        assert entrypoint[-2:] == ("--config-polling-period", "PT2S")

    def test_initialize(self, broker, settings):
        assert settings.manifest_path("demo").is_file()
        assert settings.routing_config_path("demo").is_file()

    def test_capabilities(self, settings, webhook):
        broker = Broker("demo", settings)
        assert isinstance(broker, Runnable)
        assert isinstance(broker, Consumer)
        assert isinstance(webhook, Parent)
        assert not isinstance(Secret("s", "demo"), Runnable)
