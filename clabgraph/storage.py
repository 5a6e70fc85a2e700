"""Annotation side-file storage.

The annotations for ``lab.clab.yml`` live next to it in
``lab.clab.yml.annotations.json``. The file is optional:

- a missing or unreadable file loads as an empty store
- saving an empty store deletes the file
- saving content identical to what is on disk does not touch the file

Reads go through a short TTL cache keyed by the resolved path so several
graph operations in quick succession share one read.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, TypeVar

from pydantic import BaseModel

from clabgraph.config import settings
from clabgraph.schemas import (
    CloudNodeAnnotation,
    FreeShapeAnnotation,
    FreeTextAnnotation,
    GroupStyleAnnotation,
    NodeAnnotation,
    TopologyAnnotations,
)
from clabgraph.utils.cache import TTLCache

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class AnnotationsWriteError(Exception):
    """Raised when the annotation side-file cannot be written or deleted."""

    def __init__(self, path: Path, message: str):
        super().__init__(f"Failed to write annotations to {path}: {message}")
        self.path = path


def annotations_path(yaml_path: str | Path) -> Path:
    """Get the side-file path for a topology file."""
    return Path(f"{yaml_path}{settings.annotations_suffix}")


def serialize_annotations(annotations: TopologyAnnotations, indent: int | None = None) -> str:
    return json.dumps(annotations.to_json_dict(), indent=indent if indent is not None else settings.annotations_indent)


def read_annotations(path: Path) -> TopologyAnnotations:
    """Read a side-file, returning an empty store if missing or invalid."""
    if not path.exists():
        return TopologyAnnotations.empty()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        annotations = TopologyAnnotations.model_validate(data)
    except OSError as e:
        logger.warning(f"Could not read annotations {path}: {e}")
        return TopologyAnnotations.empty()
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Ignoring invalid annotations file {path}: {e}")
        return TopologyAnnotations.empty()
    return _with_empty_lists(annotations)


def _with_empty_lists(annotations: TopologyAnnotations) -> TopologyAnnotations:
    for name in (
        "freeTextAnnotations",
        "freeShapeAnnotations",
        "groupStyleAnnotations",
        "cloudNodeAnnotations",
        "nodeAnnotations",
    ):
        if getattr(annotations, name) is None:
            setattr(annotations, name, [])
    return annotations


def write_annotations(path: Path, annotations: TopologyAnnotations, indent: int | None = None) -> bool:
    """Write a side-file to disk.

    Returns:
        True if the file was written or deleted, False if it already held
        the same content (or was already absent for an empty store)
    """
    if annotations.is_empty():
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete empty annotations file {path}: {e}")
            raise AnnotationsWriteError(path, str(e)) from e
        logger.debug(f"Deleted empty annotations file {path}")
        return True

    content = serialize_annotations(annotations, indent)
    try:
        if path.exists() and path.read_text(encoding="utf-8") == content:
            logger.debug(f"Annotations unchanged, skipping write of {path}")
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write annotations file {path}: {e}")
        raise AnnotationsWriteError(path, str(e)) from e
    return True


class AnnotationsManager:
    """Cached access to annotation side-files.

    Callers always receive a copy, so mutating a loaded store never leaks
    into the cache before it is saved.
    """

    def __init__(
        self,
        ttl: float | None = None,
        clock: Callable[[], float] | None = None,
        indent: int | None = None,
    ) -> None:
        self._cache: TTLCache[TopologyAnnotations] = TTLCache(
            ttl=ttl if ttl is not None else settings.annotations_cache_ttl,
            clock=clock,
        )
        self.indent = indent if indent is not None else settings.annotations_indent

    def annotations_path(self, yaml_path: str | Path) -> Path:
        return annotations_path(yaml_path)

    def _key(self, yaml_path: str | Path) -> str:
        return str(self.annotations_path(yaml_path).resolve())

    def read(self, yaml_path: str | Path) -> TopologyAnnotations:
        """Synchronous load, used from code already running off the event loop."""
        key = self._key(yaml_path)
        cached = self._cache.get(key)
        if cached is None:
            cached = read_annotations(self.annotations_path(yaml_path))
            self._cache.set(key, cached)
        return cached.model_copy(deep=True)

    def write(self, yaml_path: str | Path, annotations: TopologyAnnotations) -> bool:
        path = self.annotations_path(yaml_path)
        written = write_annotations(path, annotations, self.indent)
        self._cache.set(self._key(yaml_path), annotations.model_copy(deep=True))
        return written

    async def load_annotations(self, yaml_path: str | Path) -> TopologyAnnotations:
        key = self._key(yaml_path)
        cached = self._cache.get(key)
        if cached is None:
            cached = await asyncio.to_thread(read_annotations, self.annotations_path(yaml_path))
            self._cache.set(key, cached)
        else:
            logger.debug(f"Annotations cache hit for {key}")
        return cached.model_copy(deep=True)

    async def save_annotations(self, yaml_path: str | Path, annotations: TopologyAnnotations) -> bool:
        """Persist ``annotations``; raises AnnotationsWriteError on failure."""
        path = self.annotations_path(yaml_path)
        written = await asyncio.to_thread(write_annotations, path, annotations, self.indent)
        self._cache.set(self._key(yaml_path), annotations.model_copy(deep=True))
        return written

    def invalidate(self, yaml_path: str | Path | None = None) -> None:
        self._cache.invalidate(None if yaml_path is None else self._key(yaml_path))


# --- In-memory edit helpers --------------------------------------------------


def _upsert(items: list[M] | None, item: M) -> list[M]:
    items = list(items or [])
    for index, existing in enumerate(items):
        if getattr(existing, "id", None) == getattr(item, "id", None):
            items[index] = item
            return items
    items.append(item)
    return items


def _remove(items: list[M] | None, item_id: str) -> list[M] | None:
    if items is None:
        return None
    return [existing for existing in items if getattr(existing, "id", None) != item_id]


def add_or_update_free_text(annotations: TopologyAnnotations, item: FreeTextAnnotation) -> TopologyAnnotations:
    annotations.freeTextAnnotations = _upsert(annotations.freeTextAnnotations, item)
    return annotations


def remove_free_text(annotations: TopologyAnnotations, item_id: str) -> TopologyAnnotations:
    annotations.freeTextAnnotations = _remove(annotations.freeTextAnnotations, item_id)
    return annotations


def add_or_update_free_shape(annotations: TopologyAnnotations, item: FreeShapeAnnotation) -> TopologyAnnotations:
    annotations.freeShapeAnnotations = _upsert(annotations.freeShapeAnnotations, item)
    return annotations


def remove_free_shape(annotations: TopologyAnnotations, item_id: str) -> TopologyAnnotations:
    annotations.freeShapeAnnotations = _remove(annotations.freeShapeAnnotations, item_id)
    return annotations


def add_or_update_group_style(annotations: TopologyAnnotations, item: GroupStyleAnnotation) -> TopologyAnnotations:
    annotations.groupStyleAnnotations = _upsert(annotations.groupStyleAnnotations, item)
    return annotations


def remove_group_style(annotations: TopologyAnnotations, item_id: str) -> TopologyAnnotations:
    annotations.groupStyleAnnotations = _remove(annotations.groupStyleAnnotations, item_id)
    return annotations


def add_or_update_cloud_node(annotations: TopologyAnnotations, item: CloudNodeAnnotation) -> TopologyAnnotations:
    annotations.cloudNodeAnnotations = _upsert(annotations.cloudNodeAnnotations, item)
    return annotations


def remove_cloud_node(annotations: TopologyAnnotations, item_id: str) -> TopologyAnnotations:
    annotations.cloudNodeAnnotations = _remove(annotations.cloudNodeAnnotations, item_id)
    return annotations


def add_or_update_node(annotations: TopologyAnnotations, item: NodeAnnotation) -> TopologyAnnotations:
    annotations.nodeAnnotations = _upsert(annotations.nodeAnnotations, item)
    return annotations


def remove_node(annotations: TopologyAnnotations, item_id: str) -> TopologyAnnotations:
    annotations.nodeAnnotations = _remove(annotations.nodeAnnotations, item_id)
    return annotations
