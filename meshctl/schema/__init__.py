"""
Schema Engine for meshctl.

Parses component-kind schemas from the CRD catalog, normalizes and
validates raw specs against them, and detaches secret-bearing values.
"""

from .catalog import Catalog, CatalogFetcher, CustomResourceDefinition
from .schema import SECRET_REF_KEYS, PropertySchema, Schema, process, validate
from .secrets import decode_secret_data, extract_secrets, secret_name
from .values import SpecMap, SpecValue, parse_args, value_type

__all__ = [
    "Catalog",
    "CatalogFetcher",
    "CustomResourceDefinition",
    "SECRET_REF_KEYS",
    "PropertySchema",
    "Schema",
    "process",
    "validate",
    "decode_secret_data",
    "extract_secrets",
    "secret_name",
    "SpecMap",
    "SpecValue",
    "parse_args",
    "value_type",
]
