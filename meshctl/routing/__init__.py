"""Triggers and the broker's local routing config."""

from .apply import apply_trigger_change
from .config import DeliveryOptions, LocalTarget, LocalTrigger, RoutingConfig, RoutingConfigFile
from .filters import Filter, exact_attribute, matches_all
from .trigger import TRIGGER_KIND, Trigger, target_url, trigger_name

__all__ = [
    "apply_trigger_change",
    "DeliveryOptions",
    "LocalTarget",
    "LocalTrigger",
    "RoutingConfig",
    "RoutingConfigFile",
    "Filter",
    "exact_attribute",
    "matches_all",
    "TRIGGER_KIND",
    "Trigger",
    "target_url",
    "trigger_name",
]
