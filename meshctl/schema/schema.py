"""
Schema Engine.

Turns a kind's OpenAPI v3 spec schema into an immutable PropertySchema
tree, then uses it to normalize raw user input (process) and to check
the result (validate).

Process rules, per key of the raw map:
    - key missing from the schema: UnknownPropertyError listing valid names
    - string for an array: comma-split (or YAML list for arrays of objects)
    - string for an object: PropertyTypeError, objects must be nested maps
    - string for a map (additionalProperties): "k:v,k2=v2" pairs
    - string for integer/number/boolean: coerced when well-formed
    - nested map: recurse with the nested schema

Secret-marked properties keep their plaintext string through process;
extract_secrets() is responsible for moving it out of the spec.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import yaml

from meshctl.errors import PropertyTypeError, SpecValidationError, UnknownPropertyError
from meshctl.schema.values import SpecMap, SpecValue, parse_key_values, value_type

SECRET_REF_KEYS = ("valueFromSecret", "secretKeyRef")

_INT_RE = re.compile(r"^[+-]?\d+$")


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


# =============================================================================
# Property tree
# =============================================================================


@dataclass(frozen=True, slots=True)
class PropertySchema:
    """One node of a kind's spec schema."""

    name: str
    type: str | None = None
    description: str = ""
    properties: dict[str, PropertySchema] = field(default_factory=dict)
    items: PropertySchema | None = None
    additional_properties: PropertySchema | bool | None = None
    required: bool = False
    required_names: tuple[str, ...] = ()
    enum: tuple[Any, ...] = ()
    pattern: str | None = None
    format: str | None = None
    int_or_string: bool = False
    preserve_unknown_fields: bool = False
    secret_ref_key: str | None = None

    @property
    def is_secret(self) -> bool:
        return self.secret_ref_key is not None

    @property
    def is_map(self) -> bool:
        """An object whose keys are user-defined (additionalProperties)."""
        return bool(self.additional_properties) and not self.properties

    @property
    def is_free_form(self) -> bool:
        return not self.properties and not isinstance(self.additional_properties, PropertySchema)

    @classmethod
    def parse(cls, name: str, raw: dict[str, Any], required: bool = False) -> PropertySchema:
        raw = raw or {}
        required_names = tuple(raw.get("required") or ())
        properties = {
            key: cls.parse(key, value, key in required_names)
            for key, value in (raw.get("properties") or {}).items()
        }

        items = None
        if isinstance(raw.get("items"), dict):
            items = cls.parse(name, raw["items"])

        additional: PropertySchema | bool | None = None
        raw_additional = raw.get("additionalProperties")
        if isinstance(raw_additional, dict):
            additional = cls.parse(name, raw_additional)
        elif isinstance(raw_additional, bool):
            additional = raw_additional

        secret_ref_key = next((key for key in SECRET_REF_KEYS if key in properties), None)

        return cls(
            name=name,
            type=raw.get("type"),
            description=raw.get("description", ""),
            properties=properties,
            items=items,
            additional_properties=additional,
            required=required,
            required_names=required_names,
            enum=tuple(raw.get("enum") or ()),
            pattern=raw.get("pattern"),
            format=raw.get("format"),
            int_or_string=bool(raw.get("x-kubernetes-int-or-string")),
            preserve_unknown_fields=bool(raw.get("x-kubernetes-preserve-unknown-fields")),
            secret_ref_key=secret_ref_key,
        )


@dataclass(frozen=True, slots=True)
class Schema:
    """The spec schema of one kind at one catalog version."""

    kind: str
    api_version: str
    root: PropertySchema

    @classmethod
    def from_openapi(cls, kind: str, api_version: str, spec_schema: dict[str, Any]) -> Schema:
        return cls(kind=kind, api_version=api_version, root=PropertySchema.parse("spec", spec_schema))

    def attributes(self) -> list[str]:
        return sorted(self.root.properties)

    def property(self, path: str) -> PropertySchema | None:
        node: PropertySchema | None = self.root
        for part in path.split("."):
            if node is None:
                return None
            node = node.properties.get(part)
        return node

    def process(self, raw: SpecMap) -> SpecMap:
        return process(self.root, raw, kind=self.kind)

    def validate(self, spec: SpecMap) -> None:
        validate(self.root, spec, kind=self.kind)


# =============================================================================
# Process
# =============================================================================


def process(schema: PropertySchema, raw: SpecMap, *, kind: str = "") -> SpecMap:
    """
    Normalize raw user input against a schema.

    Returns a new map; raw is not modified.

    Raises:
        UnknownPropertyError: a key is not defined by the schema
        PropertyTypeError: a flat string was given where a structure is required,
            or a value is not a spec value at all (e.g. a YAML timestamp)
    """
    return _process_map(schema, raw, "", kind)


def _process_map(schema: PropertySchema, raw: SpecMap, path: str, kind: str) -> SpecMap:
    if schema.is_map or schema.is_free_form:
        additional = schema.additional_properties
        if isinstance(additional, PropertySchema):
            return {
                key: _process_value(additional, value, _join(path, key), kind)
                for key, value in raw.items()
            }
        return dict(raw)

    result: SpecMap = {}
    for key, value in raw.items():
        child_path = _join(path, key)
        prop = schema.properties.get(key)
        if prop is None:
            raise UnknownPropertyError(child_path, list(schema.properties), kind=kind)
        result[key] = _process_value(prop, value, child_path, kind)
    return result


def _process_value(prop: PropertySchema, value: SpecValue, path: str, kind: str) -> SpecValue:
    try:
        vtype = value_type(value)
    except TypeError as e:
        raise PropertyTypeError(path, prop.type or "a spec value", value, kind=kind, hint=str(e)) from e

    if vtype == "string":
        if prop.is_secret:
            return value
        return _coerce_string(prop, value, path, kind)  # type: ignore[arg-type]
    if vtype == "object":
        if prop.properties or prop.is_map:
            return _process_map(prop, value, path, kind)  # type: ignore[arg-type]
        return dict(value)  # type: ignore[arg-type]
    if vtype == "array":
        if prop.items is None:
            return list(value)  # type: ignore[arg-type]
        return [
            _process_value(prop.items, item, f"{path}[{i}]", kind)
            for i, item in enumerate(value)  # type: ignore[arg-type]
        ]
    # integer, number, boolean, null
    return value


def _coerce_string(prop: PropertySchema, value: str, path: str, kind: str) -> SpecValue:
    if prop.int_or_string:
        return value

    if prop.type == "array":
        items = prop.items
        if items is not None and (items.type == "object" or items.properties):
            return _parse_object_list(prop, value, path, kind)
        parts = [part.strip() for part in value.split(",") if part.strip()]
        if items is None:
            return parts
        return [_process_value(items, part, f"{path}[{i}]", kind) for i, part in enumerate(parts)]

    if prop.type == "object":
        if prop.is_map:
            return _process_map(prop, parse_key_values(value), path, kind)
        expected = "an object"
        if prop.properties:
            expected = f"an object with properties: {', '.join(sorted(prop.properties))}"
        raise PropertyTypeError(path, expected, value, kind=kind)

    if prop.type == "integer" and _INT_RE.match(value.strip()):
        return int(value.strip())

    if prop.type == "number":
        try:
            return float(value)
        except ValueError:
            return value

    if prop.type == "boolean" and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"

    return value


def _parse_object_list(prop: PropertySchema, value: str, path: str, kind: str) -> list[SpecValue]:
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as e:
        raise PropertyTypeError(path, "a list of objects", value, kind=kind, hint=str(e)) from e
    if not isinstance(parsed, list):
        raise PropertyTypeError(path, "a list of objects", value, kind=kind)
    return [_process_value(prop.items, item, f"{path}[{i}]", kind) for i, item in enumerate(parsed)]  # type: ignore[arg-type]


# =============================================================================
# Validate
# =============================================================================


def validate(schema: PropertySchema, spec: SpecMap, *, kind: str = "") -> None:
    """
    Check a processed spec against its schema.

    All problems are collected before raising so the caller can report
    them in one go.

    Raises:
        SpecValidationError: with (path, message) issues
    """
    issues: list[tuple[str, str]] = []
    _validate_map(schema, spec, "", issues)
    if issues:
        raise SpecValidationError(kind, issues)


def _validate_map(schema: PropertySchema, value: SpecMap, path: str, issues: list[tuple[str, str]]) -> None:
    for name in schema.required_names:
        if name not in value:
            issues.append((_join(path, name), "required property is missing"))

    for key, item in value.items():
        child_path = _join(path, key)
        prop = schema.properties.get(key)
        if prop is not None:
            _validate_value(prop, item, child_path, issues)
        elif isinstance(schema.additional_properties, PropertySchema):
            _validate_value(schema.additional_properties, item, child_path, issues)
        elif not (schema.is_free_form or schema.is_map):
            available = ", ".join(sorted(schema.properties))
            issues.append((child_path, f"unknown property, available values are: {available}"))


def _type_matches(expected: str, actual: str) -> bool:
    return expected == actual or (expected == "number" and actual == "integer")


def _validate_value(prop: PropertySchema, value: SpecValue, path: str, issues: list[tuple[str, str]]) -> None:
    if value is None:
        return
    try:
        actual = value_type(value)
    except TypeError as e:
        issues.append((path, str(e)))
        return

    if prop.int_or_string:
        if actual not in ("integer", "string"):
            issues.append((path, f"expected integer or string, got {actual}"))
        return
    if prop.type and not _type_matches(prop.type, actual):
        issues.append((path, f"expected {prop.type}, got {actual}"))
        return

    if prop.enum and value not in prop.enum:
        allowed = ", ".join(str(v) for v in prop.enum)
        issues.append((path, f"value {value!r} is not one of: {allowed}"))

    if actual == "string":
        if prop.pattern and not re.search(prop.pattern, value):  # type: ignore[arg-type]
            issues.append((path, f"value {value!r} does not match pattern {prop.pattern}"))
        if prop.format == "uri":
            parsed = urlparse(value)  # type: ignore[arg-type]
            if not (parsed.scheme and parsed.netloc):
                issues.append((path, f"value {value!r} is not a valid URI"))
    elif actual == "object":
        _validate_map(prop, value, path, issues)  # type: ignore[arg-type]
    elif actual == "array" and prop.items is not None:
        for i, item in enumerate(value):  # type: ignore[arg-type]
            _validate_value(prop.items, item, f"{path}[{i}]", issues)
