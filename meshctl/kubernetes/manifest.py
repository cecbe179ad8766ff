"""
Manifest: the file-backed list of a broker's declarative objects.

The backing path is either a single multi-document YAML file or a
directory of such files. Directories are read non-recursively in
sorted filename order; only single files can be written.

Add/Remove mutate memory only. Nothing touches disk until write().
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from meshctl.errors import ManifestError, ManifestNotFoundError
from meshctl.kubernetes.object import Object

logger = logging.getLogger(__name__)


class Manifest:
    """Ordered, identity-unique collection of objects."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.objects: list[Object] = []

    @classmethod
    def load(cls, path: Path | str) -> Manifest:
        manifest = cls(path)
        manifest.read()
        return manifest

    # -------------------------------------------------------------------------
    # Disk
    # -------------------------------------------------------------------------

    def _files(self) -> list[Path]:
        if not self.path.exists():
            raise ManifestNotFoundError(str(self.path))
        if self.path.is_dir():
            return sorted(p for p in self.path.iterdir() if p.is_file())
        return [self.path]

    def read(self) -> None:
        objects: list[Object] = []
        for file in self._files():
            try:
                documents = list(yaml.safe_load_all(file.read_text()))
            except OSError as e:
                raise ManifestError(f"reading manifest: {e}", str(file)) from e
            except yaml.YAMLError as e:
                raise ManifestError(f"parsing manifest: {e}", str(file)) from e
            for document in documents:
                if not document:
                    continue
                try:
                    objects.append(Object.model_validate(document))
                except ValidationError as e:
                    raise ManifestError(f"invalid object: {e}", str(file)) from e
        self.objects = objects
        logger.debug(f"[manifest] Read {len(objects)} objects from {self.path}")

    def render(self) -> str:
        return "".join(
            "---\n" + yaml.safe_dump(obj.to_dict(), sort_keys=False, default_flow_style=False)
            for obj in self.objects
        )

    def write(self) -> None:
        if self.path.is_dir():
            raise ManifestError("cannot write a directory manifest", str(self.path))
        try:
            self.path.write_text(self.render())
        except OSError as e:
            raise ManifestError(f"writing manifest: {e}", str(self.path)) from e
        logger.debug(f"[manifest] Wrote {len(self.objects)} objects to {self.path}")

    # -------------------------------------------------------------------------
    # In-memory edits
    # -------------------------------------------------------------------------

    def add(self, obj: Object) -> bool:
        """
        Insert or replace an object by identity.

        Returns:
            False if an identical object is already present, True otherwise
        """
        obj = obj.model_copy(deep=True)
        obj.metadata.namespace = None
        for i, existing in enumerate(self.objects):
            if existing.identity != obj.identity:
                continue
            if existing == obj:
                return False
            self.objects[i] = obj
            return True
        self.objects.append(obj)
        return True

    def remove(self, name: str, kind: str) -> bool:
        """Drop every object with this name and kind, whatever its apiVersion."""
        kept = [obj for obj in self.objects if not (obj.name == name and obj.kind == kind)]
        removed = len(kept) != len(self.objects)
        self.objects = kept
        return removed

    def get(self, name: str, kind: str | None = None) -> Object | None:
        for obj in self.objects:
            if obj.name == name and (kind is None or obj.kind == kind):
                return obj
        return None

    def by_kind(self, kind: str) -> list[Object]:
        return [obj for obj in self.objects if obj.kind == kind]

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self):
        return iter(self.objects)
