"""
Local routing config.

The broker container reads this file (bind-mounted, hot-reloaded) to
learn which triggers exist and where matching events go:

    triggers:
      demo-trigger-1a2b3c4d:
        filters:
        - exact:
            type: io.example.created
        target:
          url: http://host.docker.internal:49153
          component: demo-sockeye-target
          deliveryOptions:
            retry: 3

Entries are replaced whole on update, never patched field by field.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from meshctl.errors import RoutingConfigError
from meshctl.routing.filters import Filter

logger = logging.getLogger(__name__)


class DeliveryOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    retry: int | None = None
    backoff_delay: str | None = Field(None, alias="backoffDelay")
    backoff_policy: str | None = Field(None, alias="backoffPolicy")
    dead_letter_url: str | None = Field(None, alias="deadLetterURL")


class LocalTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    component: str = ""
    delivery_options: DeliveryOptions | None = Field(None, alias="deliveryOptions")


class LocalTrigger(BaseModel):
    filters: list[Filter] = Field(default_factory=list)
    target: LocalTarget = Field(default_factory=LocalTarget)


class RoutingConfig(BaseModel):
    triggers: dict[str, LocalTrigger] = Field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> RoutingConfig:
        data = yaml.safe_load(text) if text.strip() else None
        return cls.model_validate(data or {})

    def render(self) -> str:
        data = self.model_dump(by_alias=True, exclude_none=True)
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

    def upsert(self, name: str, trigger: LocalTrigger) -> None:
        self.triggers[name] = trigger

    def remove(self, name: str) -> bool:
        return self.triggers.pop(name, None) is not None

    def lookup(self, name: str) -> LocalTrigger | None:
        return self.triggers.get(name)

    def triggers_for_target(self, component: str) -> list[str]:
        return [name for name, trigger in self.triggers.items() if trigger.target.component == component]


class RoutingConfigFile:
    """The broker's routing config on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def read(self) -> RoutingConfig:
        try:
            text = self.path.read_text()
        except FileNotFoundError as e:
            raise RoutingConfigError("routing config does not exist, please create the broker", str(self.path)) from e
        except OSError as e:
            raise RoutingConfigError(f"reading routing config: {e}", str(self.path)) from e
        try:
            return RoutingConfig.parse(text)
        except (yaml.YAMLError, ValidationError) as e:
            raise RoutingConfigError(f"parsing routing config: {e}", str(self.path)) from e

    def write(self, config: RoutingConfig) -> None:
        try:
            self.path.write_text(config.render())
        except OSError as e:
            raise RoutingConfigError(f"writing routing config: {e}", str(self.path)) from e
        logger.debug(f"[routing] Wrote {len(config.triggers)} triggers to {self.path}")
