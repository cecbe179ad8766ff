"""
Trigger filters.

A filter is exactly one of:

    exact / prefix / suffix   attribute map, every entry must match
    all / any                 list of sub-filters (and / or)
    not                       a single negated sub-filter
    cesql                     a CloudEvents SQL expression

The broker is the authority on filter semantics; matches() is a local
preview used by describe. CESQL is not evaluated locally.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from meshctl.errors import FilterError

DIALECTS = ("exact", "prefix", "suffix", "all", "any", "not_", "cesql")


class Filter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exact: dict[str, str] | None = None
    prefix: dict[str, str] | None = None
    suffix: dict[str, str] | None = None
    all: list[Filter] | None = None
    any: list[Filter] | None = None
    not_: Filter | None = Field(None, alias="not")
    cesql: str | None = None

    @model_validator(mode="after")
    def _single_dialect(self) -> Filter:
        present = [name for name in DIALECTS if getattr(self, name) is not None]
        if len(present) != 1:
            raise ValueError(f"a filter must set exactly one of exact, prefix, suffix, all, any, not, cesql; got {present}")
        return self

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def matches(self, attributes: dict[str, str]) -> bool:
        if self.exact is not None:
            return all(attributes.get(k) == v for k, v in self.exact.items())
        if self.prefix is not None:
            return all(attributes.get(k, "").startswith(v) for k, v in self.prefix.items())
        if self.suffix is not None:
            return all(attributes.get(k, "").endswith(v) for k, v in self.suffix.items())
        if self.all is not None:
            return all(f.matches(attributes) for f in self.all)
        if self.any is not None:
            return any(f.matches(attributes) for f in self.any)
        if self.not_ is not None:
            return not self.not_.matches(attributes)
        raise FilterError(f"CESQL expression {self.cesql!r} is evaluated by the broker only")


Filter.model_rebuild()


def exact_attribute(attribute: str, value: str) -> Filter:
    return Filter(exact={attribute: value.strip()})


def matches_all(filters: list[Filter], attributes: dict[str, str]) -> bool:
    """An empty filter list matches every event."""
    return all(f.matches(attributes) for f in filters)
