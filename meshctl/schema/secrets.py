"""
Secret extraction.

Properties whose schema carries a secret-reference marker
(valueFromSecret or secretKeyRef) never stay inline in a persisted
spec. extract_secrets() moves their plaintext out into a flat
key -> base64 payload and leaves a {name, key} pointer behind:

    {"auth": {"credentials": {"secretAccessKey": "foo"}}}

becomes

    {"auth": {"credentials": {"secretAccessKey":
        {"valueFromSecret": {"name": "comp-secret", "key": "secretAccessKey"}}}}}

with payload {"secretAccessKey": "Zm9v"}.
"""

from __future__ import annotations

import base64

from meshctl.errors import SecretValueError
from meshctl.schema.schema import PropertySchema, Schema
from meshctl.schema.values import SpecMap


def secret_name(owner: str) -> str:
    """Name of the Secret object owned by a component."""
    return f"{owner.lower()}-secret"


def encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def decode(value: str) -> str:
    return base64.b64decode(value).decode()


def decode_secret_data(data: dict[str, str]) -> dict[str, str]:
    """Decode a Secret's base64 data map into plaintext env entries."""
    return {key: decode(value) for key, value in data.items()}


def extract_secrets(owner: str, schema: Schema | PropertySchema, spec: SpecMap) -> dict[str, str]:
    """
    Detach secret-marked values from spec, in place.

    Keys that the schema does not know are ignored here; process()
    is the place that rejects them. A leaf that is already a reference
    is left untouched, so extraction is safe to repeat.

    Returns:
        Map of property name to base64-encoded value

    Raises:
        SecretValueError: a secret-marked leaf holds a non-string value
    """
    root = schema.root if isinstance(schema, Schema) else schema
    payload: dict[str, str] = {}
    _extract(root, spec, secret_name(owner), "", payload)
    return payload


def _extract(schema: PropertySchema, spec: SpecMap, name: str, path: str, payload: dict[str, str]) -> None:
    for key, value in spec.items():
        prop = schema.properties.get(key)
        if prop is None:
            continue
        child_path = f"{path}.{key}" if path else key

        if prop.is_secret:
            if isinstance(value, dict) and prop.secret_ref_key in value:
                continue
            if not isinstance(value, str):
                raise SecretValueError(child_path, value)
            payload[key] = encode(value)
            spec[key] = {prop.secret_ref_key: {"name": name, "key": key}}
        elif isinstance(value, dict) and prop.properties:
            _extract(prop, value, name, child_path, payload)


def has_secret_refs(schema: Schema | PropertySchema, spec: SpecMap) -> bool:
    """True when spec already holds at least one secret reference."""
    root = schema.root if isinstance(schema, Schema) else schema
    return bool(secret_refs(root, spec))


def secret_refs(schema: PropertySchema, spec: SpecMap) -> list[tuple[str, str]]:
    """List (secret name, key) pairs referenced from spec."""
    refs: list[tuple[str, str]] = []
    for key, value in spec.items():
        prop = schema.properties.get(key)
        if prop is None or not isinstance(value, dict):
            continue
        if prop.is_secret and isinstance(value.get(prop.secret_ref_key), dict):
            ref = value[prop.secret_ref_key]
            refs.append((ref.get("name", ""), ref.get("key", "")))
        elif prop.properties:
            refs.extend(secret_refs(prop, value))
    return refs
