"""Bridge alias nodes.

A bridge with many links can be drawn more than once: the annotation store
holds extra node entries that point back at the bridge (``yamlNodeId``) and
at the interface they carry (``yamlInterface``). Each such entry becomes an
alias node, edges on that ``(bridge, interface)`` pair are rewired onto the
alias, and a base bridge whose links are all carried by aliases is hidden
(tagged with a class, never removed).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, MutableSet

from clabgraph.enums import NodeRole
from clabgraph.schemas import NodeAnnotation, TopologyAnnotations
from clabgraph.services.elements import NODE_WEIGHT, add_class, is_edge, is_node, node_element, remove_class
from clabgraph.services.node_builder import DEFAULT_GROUP_LEVEL, declared_nodes, is_bridge_kind, resolve_node_config

logger = logging.getLogger(__name__)

CLASS_ALIASED_BASE_BRIDGE = "aliased-base-bridge"


@dataclass(frozen=True)
class AliasEntry:
    id: str
    yaml_node_id: str
    yaml_interface: str


def as_trimmed_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def build_node_annotation_index(annotations: TopologyAnnotations | None) -> dict[str, NodeAnnotation]:
    if annotations is None:
        return {}
    return {ann.id: ann for ann in annotations.nodeAnnotations or []}


def to_position(annotation: NodeAnnotation | None) -> dict[str, int | float]:
    if annotation is None or annotation.position is None:
        return {"x": 0, "y": 0}
    return {"x": annotation.position.x, "y": annotation.position.y}


def to_parent(annotation: NodeAnnotation | None) -> str | None:
    if annotation is None or annotation.group in (None, ""):
        return None
    level = annotation.level if annotation.level not in (None, "") else DEFAULT_GROUP_LEVEL
    return f"{annotation.group}:{level}"


def collect_alias_entries(annotations: TopologyAnnotations | None) -> list[AliasEntry]:
    """Node annotations that declare an alias of another node.

    Incomplete entries and self-references are ignored.
    """
    entries: list[AliasEntry] = []
    if annotations is None:
        return entries
    for ann in annotations.nodeAnnotations or []:
        alias_id = as_trimmed_string(ann.id)
        base_id = as_trimmed_string(ann.yamlNodeId)
        iface = as_trimmed_string(ann.yamlInterface)
        if not alias_id or not base_id or not iface or alias_id == base_id:
            continue
        entries.append(AliasEntry(id=alias_id, yaml_node_id=base_id, yaml_interface=iface))
    return entries


def alias_key(base_id: str, iface: str) -> str:
    return f"{base_id}|{iface}"


def build_alias_map(entries: Iterable[AliasEntry]) -> dict[str, str]:
    """``"<base>|<iface>" -> alias id``; the first entry for a pair wins."""
    alias_map: dict[str, str] = {}
    for entry in entries:
        key = alias_key(entry.yaml_node_id, entry.yaml_interface)
        if key in alias_map and alias_map[key] != entry.id:
            logger.warning(f"Ignoring alias {entry.id}: {key} is already aliased by {alias_map[key]}")
            continue
        alias_map[key] = entry.id
    return alias_map


def derive_alias_placement(alias_ann: NodeAnnotation | None, base_ann: NodeAnnotation | None) -> dict[str, Any]:
    """Position and parent for an alias node.

    The alias annotation wins, then the base bridge's, then ``{0, 0}`` with
    no parent key.
    """
    source = alias_ann if alias_ann is not None and alias_ann.position is not None else base_ann
    placement: dict[str, Any] = {"position": to_position(source)}
    parent = to_parent(alias_ann) or to_parent(base_ann)
    if parent:
        placement["parent"] = parent
    return placement


def create_alias_element(
    nodes: Mapping[str, Any],
    alias_id: str,
    base_id: str,
    ann_by_id: Mapping[str, NodeAnnotation],
    doc: Mapping[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Alias node element, or None when ``base_id`` is not a declared bridge."""
    base_node = nodes.get(base_id)
    if base_node is None:
        logger.warning(f"Alias {alias_id} references missing node {base_id}; skipping")
        return None
    config = resolve_node_config(doc, base_node) if doc is not None else dict(base_node or {})
    kind = config.get("kind")
    if not is_bridge_kind(kind):
        logger.warning(f"Alias {alias_id} references {base_id} of kind {kind!r}, not a bridge; skipping")
        return None

    alias_ann = ann_by_id.get(alias_id)
    placement = derive_alias_placement(alias_ann, ann_by_id.get(base_id))
    name = (alias_ann.label if alias_ann is not None else None) or base_id

    data: dict[str, Any] = {
        "id": alias_id,
        "weight": NODE_WEIGHT,
        "name": name,
        "topoViewerRole": (alias_ann.icon if alias_ann is not None else None) or NodeRole.BRIDGE.value,
        "lat": "",
        "lng": "",
        "extraData": {
            "id": alias_id,
            "name": name,
            "shortname": base_id,
            "longname": base_id,
            "kind": kind,
            "type": config.get("type") or "",
            "image": config.get("image") or "",
            "labels": {},
            "extYamlNodeId": base_id,
            "weight": "3",
        },
    }
    if "parent" in placement:
        data["parent"] = placement["parent"]
    return node_element(data, placement["position"])


def add_alias_nodes_from_annotations(
    doc: Mapping[str, Any],
    annotations: TopologyAnnotations | None,
    elements: list[dict[str, Any]],
) -> None:
    """Append one alias node per distinct alias id found in the annotations."""
    entries = collect_alias_entries(annotations)
    if not entries:
        return
    nodes = {str(name): node for name, node in declared_nodes(doc).items()}
    ann_by_id = build_node_annotation_index(annotations)
    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen or entry.id in nodes:
            continue
        element = create_alias_element(nodes, entry.id, entry.yaml_node_id, ann_by_id, doc)
        if element is not None:
            elements.append(element)
            seen.add(entry.id)


def apply_alias_mappings_to_edges(annotations: TopologyAnnotations | None, elements: list[dict[str, Any]]) -> None:
    """Rewrite edge sides on a known ``(base, iface)`` pair onto the alias.

    Only aliases that exist as node elements are used, so an alias that was
    rejected never captures an edge.
    """
    alias_map = build_alias_map(collect_alias_entries(annotations))
    if not alias_map:
        return
    present = {el["data"].get("id") for el in elements if is_node(el)}
    for el in elements:
        if not is_edge(el):
            continue
        data = el["data"]
        for side, endpoint_key in (("source", "sourceEndpoint"), ("target", "targetEndpoint")):
            alias_id = alias_map.get(alias_key(str(data.get(side) or ""), str(data.get(endpoint_key) or "")))
            if alias_id and alias_id in present:
                data[side] = alias_id


def collect_alias_groups(elements: Iterable[Mapping[str, Any]]) -> dict[str, list[str]]:
    """``base id -> [alias ids]`` for bridge alias nodes present in ``elements``."""
    groups: dict[str, list[str]] = {}
    for el in elements:
        if not is_node(el):
            continue
        data = el.get("data") or {}
        extra = data.get("extraData") or {}
        base_id = extra.get("extYamlNodeId")
        if not base_id or base_id == data.get("id") or not is_bridge_kind(extra.get("kind")):
            continue
        groups.setdefault(base_id, []).append(data.get("id"))
    return groups


def collect_still_referenced_base_bridges(
    elements: Iterable[Mapping[str, Any]],
    alias_groups: Mapping[str, list[str]],
) -> set[str]:
    referenced: set[str] = set()
    for el in elements:
        if not is_edge(el):
            continue
        data = el.get("data") or {}
        for side in ("source", "target"):
            node_id = data.get(side)
            if node_id in alias_groups:
                referenced.add(node_id)
    return referenced


def hide_base_bridge_nodes_with_aliases(
    elements: list[dict[str, Any]],
    logged: MutableSet[str] | None = None,
) -> None:
    """Hide base bridges whose edges are all carried by aliases.

    A base that is still addressed directly by an edge stays visible, and
    loses the hidden class if an earlier pass set it.
    """
    alias_groups = collect_alias_groups(elements)
    if not alias_groups:
        return
    referenced = collect_still_referenced_base_bridges(elements, alias_groups)
    logged = logged if logged is not None else set()

    for el in elements:
        if not is_node(el):
            continue
        node_id = el["data"].get("id")
        if node_id not in alias_groups:
            continue
        classes = el.get("classes") or ""
        if node_id in referenced:
            el["classes"] = remove_class(classes, CLASS_ALIASED_BASE_BRIDGE)
            continue
        el["classes"] = add_class(classes, CLASS_ALIASED_BASE_BRIDGE)
        if node_id not in logged:
            logged.add(node_id)
            logger.info(f"Bridge {node_id} is fully covered by aliases {alias_groups[node_id]}; hiding base node")
