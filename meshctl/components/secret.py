"""Secret component: detached, base64-encoded secret values of a parent."""

from __future__ import annotations

from meshctl.components.base import Component
from meshctl.kubernetes.object import CONTEXT_LABEL, NAMESPACE, Metadata, Object
from meshctl.schema.secrets import decode_secret_data

SECRET_KIND = "Secret"
SECRET_API_VERSION = "v1"
SECRET_TYPE = "Opaque"


class Secret(Component):
    def __init__(self, name: str, broker: str, data: dict[str, str] | None = None):
        super().__init__(name, broker)
        self.data = dict(data or {})

    @property
    def kind(self) -> str:
        return SECRET_KIND

    @property
    def api_version(self) -> str:
        return SECRET_API_VERSION

    def as_object(self) -> Object:
        return Object(
            api_version=SECRET_API_VERSION,
            kind=SECRET_KIND,
            metadata=Metadata(name=self.name, namespace=NAMESPACE, labels={CONTEXT_LABEL: self.broker}),
            data=dict(self.data),
            type=SECRET_TYPE,
        )

    def decoded(self) -> dict[str, str]:
        return decode_secret_data(self.data)

    @classmethod
    def from_object(cls, obj: Object) -> Secret:
        return cls(obj.name, obj.broker, obj.data)
