"""Live link state over a cached view-mode graph.

Polling ticks call ``build_edge_updates_from_cache`` with a fresh inspection
snapshot. Only edge ``extraData`` and ``classes`` change; node and edge
identities come from the cached compile and are never regenerated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from clabgraph.schemas import LabTreeNode
from clabgraph.services.edge_builder import (
    CLASS_LINK_DOWN,
    CLASS_LINK_UP,
    compute_edge_class_from_states,
    extract_edge_interface_stats,
)
from clabgraph.services.elements import is_edge
from clabgraph.utils.tree import find_interface_node

logger = logging.getLogger(__name__)

STATE_CLASSES = (CLASS_LINK_UP, CLASS_LINK_DOWN)


@dataclass
class ViewModeCache:
    """Last view-mode compile of one topology file."""

    elements: list[dict[str, Any]] = field(default_factory=list)
    parsed_topology: Mapping[str, Any] | None = None
    source_mtime: float | None = None
    yaml_path: str | None = None


def merge_link_state_classes(existing: str | None, state_class: str | None) -> str:
    """Replace any link-up/link-down token in ``existing`` with ``state_class``.

    Prior state tokens are always dropped and whitespace is collapsed; an
    empty ``state_class`` adds no new token.

    Example:
        merge_link_state_classes("link-up foo", "link-down") -> "link-down foo"
    """
    remaining = [token for token in (existing or "").split() if token not in STATE_CLASSES]
    return " ".join(([state_class] if state_class else []) + remaining)


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def pick_node_id(yaml_id: Any, fallback: Any) -> str:
    return _clean(yaml_id) or _clean(fallback)


def pick_interface_name(primary: Any, fallback: Any) -> str:
    if _clean(primary):
        return primary.strip()
    if isinstance(fallback, str):
        return fallback
    return ""


class LinkStateManager:
    """Refreshes edge state from inspection data without recompiling."""

    def __init__(self, lab_name: str = "") -> None:
        self.current_lab_name = lab_name

    def set_current_lab_name(self, lab_name: str | None) -> None:
        self.current_lab_name = lab_name or ""

    def build_edge_updates_from_cache(
        self,
        cache: ViewModeCache | None,
        labs: Mapping[str, LabTreeNode] | None,
    ) -> list[dict[str, Any]]:
        """Refresh every cached edge in place and return them."""
        if cache is None or not cache.elements:
            return []
        updated = []
        for element in cache.elements:
            if not is_edge(element):
                continue
            self.refresh_edge(element, labs, cache.parsed_topology)
            updated.append(element)
        logger.debug(f"Refreshed {len(updated)} cached edges for lab {self.current_lab_name!r}")
        return updated

    def refresh_edge(
        self,
        element: dict[str, Any],
        labs: Mapping[str, LabTreeNode] | None,
        doc: Mapping[str, Any] | None,
    ) -> None:
        data = element.setdefault("data", {})
        extra = data.get("extraData")
        if not isinstance(extra, dict):
            extra = {}
            data["extraData"] = extra

        lab_name = self.current_lab_name or None
        for prefix, side, endpoint_key in (("Source", "source", "sourceEndpoint"), ("Target", "target", "targetEndpoint")):
            iface_name = pick_interface_name(extra.get(f"clab{prefix}Port"), data.get(endpoint_key))
            container = _clean(extra.get(f"clab{prefix}LongName")) or pick_node_id(extra.get(f"yaml{prefix}NodeId"), data.get(side))
            iface = find_interface_node(labs, container, iface_name, lab_name)

            stats_key = f"clab{prefix}Stats"
            if iface is None:
                extra.pop(stats_key, None)
                continue
            extra[f"clab{prefix}InterfaceState"] = iface.state
            extra[f"clab{prefix}MacAddress"] = iface.mac
            stats = extract_edge_interface_stats(iface)
            if stats:
                extra[stats_key] = stats
            else:
                extra.pop(stats_key, None)

        source_id = pick_node_id(extra.get("yamlSourceNodeId"), data.get("source"))
        target_id = pick_node_id(extra.get("yamlTargetNodeId"), data.get("target"))
        if not source_id or not target_id:
            return
        state_class = compute_edge_class_from_states(
            doc,
            source_id,
            target_id,
            extra.get("clabSourceInterfaceState"),
            extra.get("clabTargetInterfaceState"),
        )
        if not state_class:
            return
        element["classes"] = merge_link_state_classes(element.get("classes"), state_class)
