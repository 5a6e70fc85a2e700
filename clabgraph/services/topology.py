"""Topology adapter: compile a containerlab topology into canvas elements.

Pipeline (one ``CompileContext`` per compile):

1. regular nodes, then alias nodes from annotations
2. cloud nodes for special endpoints (host, mgmt-net, macvlan, vxlan, dummy)
3. group nodes for every parent referenced so far
4. edges, one per canonical link key
5. alias rewiring of edges, hiding fully aliased base bridges
6. bridge interface collision fix-up
7. legacy ``graph-*`` label migration into the annotation store

View mode fills container state and link state from a live inspection
snapshot and keeps the result cached so polling ticks only refresh edges.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import yaml

from clabgraph.config import settings
from clabgraph.enums import CompileMode
from clabgraph.schemas import LabTreeNode, TopologyAnnotations
from clabgraph.services import edge_builder
from clabgraph.services.alias_nodes import (
    add_alias_nodes_from_annotations,
    apply_alias_mappings_to_edges,
    build_node_annotation_index,
    hide_base_bridge_nodes_with_aliases,
)
from clabgraph.services.bridge_interfaces import auto_fix_duplicate_bridge_interfaces
from clabgraph.services.elements import is_node
from clabgraph.services.layout_writer import apply_payload_to_annotations
from clabgraph.services.legacy_labels import migrate_legacy_labels
from clabgraph.services.link_parser import CompileContext
from clabgraph.services.link_state import LinkStateManager, ViewModeCache
from clabgraph.services.node_builder import (
    add_group_nodes,
    add_node_elements,
    compute_full_prefix,
    declared_nodes,
    is_preset_layout,
)
from clabgraph.services.special_nodes import add_cloud_nodes, collect_special_nodes
from clabgraph.services.topology_writer import apply_payload_to_topology, dump_topology_yaml
from clabgraph.storage import AnnotationsManager, AnnotationsWriteError
from clabgraph.utils.locks import SingleFlight

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TopologyLoadError(Exception):
    """Raised when a topology file cannot be read or parsed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Failed to load topology {source}: {message}")
        self.source = source


def parse_topology(yaml_text: str, source: str = "<string>") -> dict[str, Any]:
    """Parse topology YAML.

    A document that is not a mapping (empty file, bare list...) parses as
    an empty topology.

    Raises:
        TopologyLoadError: If the YAML is invalid
    """
    try:
        doc = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as e:
        raise TopologyLoadError(source, str(e)) from e
    if not isinstance(doc, dict):
        logger.warning(f"Topology {source} is not a mapping; compiling an empty graph")
        return {}
    return doc


def read_topology_file(path: str | Path) -> tuple[str, float]:
    """Return file text and mtime."""
    path = Path(path)
    try:
        return path.read_text(encoding="utf-8"), path.stat().st_mtime
    except OSError as e:
        raise TopologyLoadError(str(path), str(e)) from e


def lab_name_of(doc: Mapping[str, Any]) -> str:
    name = doc.get("name")
    return "" if name is None else str(name)


class TopologyAdapter:
    """Compiles one topology file at a time and remembers the last result."""

    def __init__(
        self,
        annotations: AnnotationsManager | None = None,
        *,
        migrate_legacy: bool = True,
    ) -> None:
        self.annotations = annotations or AnnotationsManager()
        self.migrate_legacy = migrate_legacy
        self.link_state = LinkStateManager()
        self.flight = SingleFlight()
        self.mode = CompileMode.EDITOR
        self.view_cache: ViewModeCache | None = None

        self.current_topology: dict[str, Any] | None = None
        self.current_lab_name = ""
        self.current_prefix = ""
        self.current_is_preset_layout = False

        # Base bridges already reported as hidden
        self._logged_hidden_bases: set[str] = set()

    # --- Compile ---------------------------------------------------------------

    def build_elements(
        self,
        doc: dict[str, Any],
        annotations: TopologyAnnotations,
        *,
        labs: Mapping[str, LabTreeNode] | None = None,
        include_container_data: bool = False,
    ) -> list[dict[str, Any]]:
        """Run the compile pipeline over a parsed document."""
        ctx = CompileContext()
        lab_name = lab_name_of(doc)
        full_prefix = compute_full_prefix(doc, lab_name)

        self.current_topology = doc
        self.current_lab_name = lab_name
        self.current_prefix = full_prefix
        self.current_is_preset_layout = is_preset_layout(doc, annotations)
        self.link_state.set_current_lab_name(lab_name)

        elements: list[dict[str, Any]] = []
        parent_map: dict[str, str | None] = {}
        add_node_elements(
            doc,
            lab_name=lab_name,
            full_prefix=full_prefix,
            annotations_by_id=build_node_annotation_index(annotations),
            parent_map=parent_map,
            elements=elements,
            labs=labs,
            include_container_data=include_container_data,
        )
        add_alias_nodes_from_annotations(doc, annotations, elements)

        special_nodes, special_node_props = collect_special_nodes(doc, ctx)
        add_cloud_nodes(
            special_nodes,
            special_node_props,
            annotations,
            elements,
            skip_ids={str(name) for name in declared_nodes(doc)},
        )

        for el in elements:
            parent = (el.get("data") or {}).get("parent")
            if parent and parent not in parent_map:
                parent_map[parent] = None
        add_group_nodes(parent_map, elements)

        edges = edge_builder.add_edge_elements(
            doc,
            ctx=ctx,
            special_nodes=special_nodes,
            full_prefix=full_prefix,
            lab_name=lab_name,
            elements=elements,
            labs=labs,
            include_container_data=include_container_data,
        )
        apply_alias_mappings_to_edges(annotations, elements)
        hide_base_bridge_nodes_with_aliases(elements, self._logged_hidden_bases)
        renamed = auto_fix_duplicate_bridge_interfaces(elements)

        node_count = sum(1 for el in elements if is_node(el))
        logger.info(
            f"Compiled topology {lab_name!r}: {node_count} nodes, {edges.count} edges"
            + (f", {renamed} bridge interface(s) renamed" if renamed else "")
        )
        return elements

    def _load_annotations(self, yaml_path: str | Path | None) -> TopologyAnnotations:
        if yaml_path is None:
            return TopologyAnnotations.empty()
        return self.annotations.read(yaml_path)

    def _migrate(self, doc: Mapping[str, Any], annotations: TopologyAnnotations, yaml_path: str | Path | None) -> None:
        if not self.migrate_legacy or yaml_path is None:
            return
        migrated = migrate_legacy_labels(doc, annotations)
        if not migrated:
            return
        try:
            self.annotations.write(yaml_path, annotations)
        except AnnotationsWriteError as e:
            # The compiled elements already carry the legacy layout.
            logger.warning(f"Legacy label migration not saved: {e}")
            return
        logger.info(f"Saved migrated layout for {', '.join(migrated)} to {self.annotations.annotations_path(yaml_path)}")

    def compile_editor(self, yaml_text: str, yaml_path: str | Path | None = None) -> list[dict[str, Any]]:
        """Compile for editing; no live state."""
        doc = parse_topology(yaml_text, str(yaml_path or "<string>"))
        annotations = self._load_annotations(yaml_path)
        elements = self.build_elements(doc, annotations)
        self._migrate(doc, annotations, yaml_path)
        return elements

    def compile_view(
        self,
        yaml_text: str,
        labs: Mapping[str, LabTreeNode] | None,
        yaml_path: str | Path | None = None,
        mtime: float | None = None,
    ) -> list[dict[str, Any]]:
        """Compile with live state, reusing the cached graph when the source is unchanged."""
        cache = self.view_cache
        if (
            settings.view_cache_enabled
            and cache is not None
            and mtime is not None
            and cache.source_mtime == mtime
            and cache.yaml_path == (str(yaml_path) if yaml_path is not None else None)
        ):
            logger.debug(f"View cache hit for {yaml_path}; refreshing link state only")
            self.refresh_link_states(labs)
            return cache.elements

        doc = parse_topology(yaml_text, str(yaml_path or "<string>"))
        annotations = self._load_annotations(yaml_path)
        elements = self.build_elements(doc, annotations, labs=labs, include_container_data=True)
        self._migrate(doc, annotations, yaml_path)
        self.view_cache = ViewModeCache(
            elements=elements,
            parsed_topology=doc,
            source_mtime=mtime,
            yaml_path=str(yaml_path) if yaml_path is not None else None,
        )
        return elements

    def _compile_path(
        self,
        path: str | Path,
        mode: CompileMode,
        labs: Mapping[str, LabTreeNode] | None,
    ) -> list[dict[str, Any]]:
        text, mtime = read_topology_file(path)
        if mode is CompileMode.VIEW:
            return self.compile_view(text, labs, yaml_path=path, mtime=mtime)
        return self.compile_editor(text, yaml_path=path)

    async def compile_file(
        self,
        path: str | Path,
        mode: CompileMode | str | None = None,
        labs: Mapping[str, LabTreeNode] | None = None,
    ) -> list[dict[str, Any]] | None:
        """Compile a file off the event loop.

        Returns None when the request was folded into a compile already in
        flight (that compile runs once more and produces the result).
        """
        resolved = CompileMode(mode) if mode is not None else self.mode
        factory = functools.partial(asyncio.to_thread, self._compile_path, path, resolved, labs)
        return await self.request_refresh(factory)

    async def request_refresh(self, factory: Callable[[], Awaitable[T]]) -> T | None:
        return await self.flight.run(factory)

    # --- Live state ------------------------------------------------------------

    def refresh_link_states(self, labs: Mapping[str, LabTreeNode] | None) -> list[dict[str, Any]]:
        """Refresh cached edges from a new snapshot without recompiling."""
        return self.link_state.build_edge_updates_from_cache(self.view_cache, labs)

    def compute_edge_class_from_states(
        self,
        topology: Mapping[str, Any] | None,
        source: str,
        target: str,
        source_state: str | None,
        target_state: str | None,
    ) -> str:
        doc = topology if topology is not None else self.current_topology
        return edge_builder.compute_edge_class_from_states(doc, source, target, source_state, target_state)

    def switch_mode(self, mode: CompileMode | str) -> None:
        """Change compile mode and drop the view cache.

        Raises:
            CompileInProgressError: If a compile is running
        """
        resolved = CompileMode(mode)
        self.flight.ensure_idle(f"switch to {resolved.value} mode")
        self.mode = resolved
        self.view_cache = None
        logger.debug(f"Switched to {resolved.value} mode")

    # --- Saving edits ----------------------------------------------------------

    async def save_layout(
        self,
        yaml_path: str | Path,
        payload: list[dict[str, Any]],
        geo_layout_active: bool = False,
    ) -> bool:
        """Store node placement from an edited payload in the side-file."""
        annotations = await self.annotations.load_annotations(yaml_path)
        apply_payload_to_annotations(annotations, payload, geo_layout_active)
        return await self.annotations.save_annotations(yaml_path, annotations)

    async def save_topology(self, yaml_path: str | Path, payload: list[dict[str, Any]]) -> bool:
        """Write nodes and links from an edited payload back to the topology file.

        Returns:
            True if the file content changed
        """
        path = Path(yaml_path)
        text, _ = await asyncio.to_thread(read_topology_file, path)
        doc = parse_topology(text, str(path))
        content = dump_topology_yaml(apply_payload_to_topology(doc, payload))
        if content == text:
            logger.debug(f"Topology {path} unchanged, skipping write")
            return False
        await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        self.view_cache = None
        logger.info(f"Saved topology {path}")
        return True
