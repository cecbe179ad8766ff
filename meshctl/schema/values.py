"""
Spec value model.

A spec is a tree of:

    String | Integer | Number | Bool | Null | List[Value] | Map[str, Value]

Python already represents these natively, so the tree is plain
dicts/lists/scalars. What this module adds is an exhaustive
classification (value_type) that the schema engine dispatches on,
plus the helpers that turn flat CLI-style input into such a tree.
"""

from __future__ import annotations

import re
from typing import Any, Union

SpecValue = Union[str, int, float, bool, None, list["SpecValue"], dict[str, "SpecValue"]]
SpecMap = dict[str, Any]

_INT_RE = re.compile(r"^[+-]?\d+$")


def value_type(value: Any) -> str:
    """
    Classify a spec value using schema type names.

    bool is checked before int since bool is an int subclass.

    Raises:
        TypeError: value is not a spec value
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise TypeError(f"unsupported spec value type: {type(value).__name__}")


def coerce_scalar(text: str) -> SpecValue:
    """Interpret a CLI string as int or bool when it looks like one."""
    stripped = text.strip()
    if _INT_RE.match(stripped):
        return int(stripped)
    if stripped in ("true", "false"):
        return stripped == "true"
    return stripped


def merge_maps(base: SpecMap, other: SpecMap) -> SpecMap:
    """Deep-merge other into a copy of base; nested maps are merged, everything else replaced."""
    result = dict(base)
    for key, value in other.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_maps(result[key], value)
        else:
            result[key] = value
    return result


def _nest(path: list[str], value: SpecValue) -> SpecMap:
    node: SpecValue = value
    for part in reversed(path):
        node = {part: node}
    return node  # type: ignore[return-value]


def parse_args(args: list[str]) -> SpecMap:
    """
    Turn dotted flags into a nested spec map.

    Example:
        >>> parse_args(["--auth.token=abc", "--port", "8080", "--verbose"])
        {'auth': {'token': 'abc'}, 'port': 8080, 'verbose': True}

    Values that look like integers become int. A flag without a value
    becomes True. Repeated prefixes are merged.
    """
    spec: SpecMap = {}
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if not arg.startswith("--"):
            continue
        key = arg[2:]
        value: SpecValue
        if "=" in key:
            key, raw = key.split("=", 1)
            value = int(raw) if _INT_RE.match(raw) else raw
        elif i < len(args) and not args[i].startswith("--"):
            raw = args[i]
            i += 1
            value = int(raw) if _INT_RE.match(raw) else raw
        else:
            value = True
        if not key:
            continue
        spec = merge_maps(spec, _nest(key.split("."), value))
    return spec


def parse_key_values(text: str) -> SpecMap:
    """
    Parse "k1:v1,k2=v2" into a map with coerced scalar values.

    Used for schema properties that declare additionalProperties.
    """
    result: SpecMap = {}
    for pair in text.split(","):
        pair = pair.strip()
        if not pair:
            continue
        for sep in ("=", ":"):
            if sep in pair:
                key, raw = pair.split(sep, 1)
                result[key.strip()] = coerce_scalar(raw)
                break
        else:
            result[pair] = ""
    return result
