"""
Staged trigger changes.

Every trigger mutation touches two files, the routing config and the
manifest. Both new contents are rendered in memory and written next to
their targets first; only when both staged files exist are they
renamed into place. A failure while staging leaves both originals
untouched.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from meshctl.errors import ManifestError, RoutingConfigError
from meshctl.kubernetes.manifest import Manifest
from meshctl.routing.config import RoutingConfigFile
from meshctl.routing.trigger import TRIGGER_KIND, Trigger

logger = logging.getLogger(__name__)


def _staged_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.staged")


def apply_trigger_change(
    manifest: Manifest,
    routing: RoutingConfigFile,
    *,
    upserts: Iterable[Trigger] = (),
    removals: Iterable[str] = (),
) -> None:
    """
    Upsert and remove triggers in both the routing config and the manifest.

    The in-memory manifest is updated only after both files are committed.

    Raises:
        RoutingConfigError: the routing config could not be read, staged or committed
        ManifestError: the manifest is a directory and cannot be written
    """
    if manifest.path.is_dir():
        raise ManifestError("cannot write a directory manifest", str(manifest.path))

    config = routing.read()
    staged_manifest = Manifest(manifest.path)
    staged_manifest.objects = list(manifest.objects)

    removed = []
    for name in removals:
        config.remove(name)
        if staged_manifest.remove(name, TRIGGER_KIND):
            removed.append(name)
    updated = []
    for trigger in upserts:
        config.upsert(trigger.name, trigger.as_local_trigger())
        staged_manifest.add(trigger.as_object())
        updated.append(trigger.name)

    staged: list[tuple[Path, Path]] = []
    try:
        for path, text in ((routing.path, config.render()), (manifest.path, staged_manifest.render())):
            tmp = _staged_path(path)
            tmp.write_text(text)
            staged.append((tmp, path))
    except OSError as e:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise RoutingConfigError(f"staging trigger change: {e}", str(routing.path)) from e

    try:
        for tmp, path in staged:
            os.replace(tmp, path)
    except OSError as e:
        raise RoutingConfigError(f"committing trigger change: {e}", str(routing.path)) from e

    manifest.objects = staged_manifest.objects
    logger.info(f"[routing] Applied trigger change: updated={updated} removed={removed}")
