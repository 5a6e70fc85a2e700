"""Node elements for the devices declared in ``topology.nodes``.

Each declared node becomes one element. Its effective configuration is the
containerlab inheritance chain (defaults < kinds < groups < node). Placement
comes from the annotation store first and from legacy inline labels second;
group memberships collected along the way become group nodes appended after
the regular nodes.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping

from clabgraph.config import settings
from clabgraph.enums import LinkType, NodeRole
from clabgraph.schemas import LabTreeNode, NodeAnnotation, TopologyAnnotations
from clabgraph.services.elements import GROUP_WEIGHT, NODE_WEIGHT, node_element, position_of
from clabgraph.utils.tree import find_container_node

logger = logging.getLogger(__name__)


# Legacy inline layout labels (pre-annotation topologies)
LABEL_POS_X = "graph-posX"
LABEL_POS_Y = "graph-posY"
LABEL_ICON = "graph-icon"
LABEL_GROUP = "graph-group"
LABEL_LEVEL = "graph-level"
LABEL_GROUP_LABEL_POS = "graph-groupLabelPos"
LABEL_GEO_LAT = "graph-geoCoordinateLat"
LABEL_GEO_LNG = "graph-geoCoordinateLng"
LEGACY_LABEL_PREFIX = "graph-"

# Labels still honoured on the node itself
LABEL_ROLE = "topoViewer-role"
LABEL_TV_GROUP = "topoViewer-group"
LABEL_TV_GROUP_LEVEL = "topoViewer-groupLevel"

DEFAULT_GROUP_LEVEL = "1"


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def topology_section(doc: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return _mapping(_mapping(doc).get("topology"))


def declared_nodes(doc: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return _mapping(topology_section(doc).get("nodes"))


def is_bridge_kind(kind: Any) -> bool:
    link_type = LinkType.parse(kind)
    return link_type is not None and link_type.is_bridge


def resolve_node_config(doc: Mapping[str, Any] | None, node: Mapping[str, Any] | None) -> dict[str, Any]:
    """Effective node configuration after containerlab inheritance.

    Layers, lowest first: ``defaults``, ``kinds[kind]``, ``groups[group]``,
    the node itself. Mapping values (labels, env, ...) are merged key-wise;
    everything else is replaced by the higher layer.
    """
    topo = topology_section(doc)
    node = _mapping(node)
    defaults = _mapping(topo.get("defaults"))

    group_name = node.get("group") or defaults.get("group")
    group = _mapping(_mapping(topo.get("groups")).get(group_name)) if group_name else {}

    kind_name = node.get("kind") or group.get("kind") or defaults.get("kind")
    kind = _mapping(_mapping(topo.get("kinds")).get(kind_name)) if kind_name else {}

    merged: dict[str, Any] = {}
    for layer in (defaults, kind, group, node):
        for key, value in layer.items():
            current = merged.get(key)
            if isinstance(value, Mapping) and isinstance(current, Mapping):
                merged[key] = {**current, **value}
            elif isinstance(value, Mapping):
                merged[key] = dict(value)
            else:
                merged[key] = value
    if kind_name:
        merged["kind"] = kind_name
    if group_name:
        merged["group"] = group_name
    return merged


def node_labels(config: Mapping[str, Any]) -> dict[str, Any]:
    return dict(_mapping(config.get("labels")))


def strip_legacy_labels(labels: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in labels.items() if not str(key).startswith(LEGACY_LABEL_PREFIX)}


def compute_full_prefix(doc: Mapping[str, Any] | None, lab_name: str) -> str:
    """Container name prefix: ``<prefix>-<lab>``, ``clab-<lab>`` by default, '' when blank."""
    doc = _mapping(doc)
    if "prefix" not in doc or doc.get("prefix") is None:
        return f"{settings.default_prefix}-{lab_name}"
    prefix = str(doc.get("prefix")).strip()
    if not prefix:
        return ""
    return f"{prefix}-{lab_name}"


def compute_labdir(doc: Mapping[str, Any] | None, lab_name: str) -> str:
    full_prefix = compute_full_prefix(doc, lab_name)
    return f"{full_prefix}/" if full_prefix else ""


def build_parent(config: Mapping[str, Any], annotation: NodeAnnotation | Mapping[str, Any] | None = None) -> str:
    """Parent id ``<group>:<level>`` for a node, or '' when it has no group.

    Example:
        annotation group "agg", level "1"         -> "agg:1"
        labels topoViewer-group "core" (no level)  -> "core:1"
    """
    if isinstance(annotation, NodeAnnotation):
        ann_group, ann_level = annotation.group, annotation.level
    else:
        ann = _mapping(annotation)
        ann_group, ann_level = ann.get("group"), ann.get("level")

    if ann_group not in (None, ""):
        level = ann_level if ann_level not in (None, "") else DEFAULT_GROUP_LEVEL
        return f"{ann_group}:{level}"

    labels = node_labels(config)
    group = labels.get(LABEL_TV_GROUP) or labels.get(LABEL_GROUP) or ""
    level = labels.get(LABEL_TV_GROUP_LEVEL) or labels.get(LABEL_LEVEL) or DEFAULT_GROUP_LEVEL
    if group:
        return f"{group}:{level}"
    return ""


def node_role(config: Mapping[str, Any], annotation: NodeAnnotation | None = None) -> str:
    if annotation is not None and annotation.icon:
        return annotation.icon
    labels = node_labels(config)
    role = labels.get(LABEL_ROLE) or labels.get(LABEL_ICON)
    if role:
        return str(role)
    if is_bridge_kind(config.get("kind")):
        return NodeRole.BRIDGE.value
    return NodeRole.ROUTER.value


def has_legacy_position(config: Mapping[str, Any]) -> bool:
    labels = node_labels(config)
    return bool(labels.get(LABEL_POS_X)) and bool(labels.get(LABEL_POS_Y))


def node_position(config: Mapping[str, Any], annotation: NodeAnnotation | None = None) -> dict[str, int | float]:
    if annotation is not None and annotation.position is not None:
        return {"x": annotation.position.x, "y": annotation.position.y}
    labels = node_labels(config)
    if has_legacy_position(config):
        return position_of(labels.get(LABEL_POS_X), labels.get(LABEL_POS_Y))
    return {"x": 0, "y": 0}


def node_geo(config: Mapping[str, Any], annotation: NodeAnnotation | None = None) -> tuple[str, str]:
    if annotation is not None and annotation.geoCoordinates is not None:
        return str(annotation.geoCoordinates.lat), str(annotation.geoCoordinates.lng)
    labels = node_labels(config)
    lat = labels.get(LABEL_GEO_LAT)
    lng = labels.get(LABEL_GEO_LNG)
    return ("" if lat is None else str(lat)), ("" if lng is None else str(lng))


def is_preset_layout(doc: Mapping[str, Any] | None, annotations: TopologyAnnotations | None) -> bool:
    """True when the topology has nodes and every one of them has a position."""
    nodes = declared_nodes(doc)
    if not nodes:
        return False
    by_id = {ann.id: ann for ann in (annotations.nodeAnnotations or [])} if annotations else {}
    for name, node in nodes.items():
        ann = by_id.get(name)
        if ann is not None and ann.position is not None:
            continue
        if has_legacy_position(resolve_node_config(doc, node)):
            continue
        return False
    return True


def add_node_elements(
    doc: Mapping[str, Any],
    *,
    lab_name: str,
    full_prefix: str,
    annotations_by_id: Mapping[str, NodeAnnotation],
    parent_map: MutableMapping[str, str | None],
    elements: list[dict[str, Any]],
    labs: Mapping[str, LabTreeNode] | None = None,
    include_container_data: bool = False,
) -> None:
    """Append one element per declared node.

    Args:
        doc: Parsed topology document
        lab_name: Lab name (``name`` key)
        full_prefix: Result of compute_full_prefix()
        annotations_by_id: Node annotations keyed by id
        parent_map: Collects parent id -> first groupLabelPos seen
        elements: Output list
        labs: Live inspection snapshot (view mode)
        include_container_data: Fill state and management addresses from labs
    """
    labdir = compute_labdir(doc, lab_name)

    for index, (name, node) in enumerate(declared_nodes(doc).items()):
        name = str(name)
        config = resolve_node_config(doc, node)
        annotation = annotations_by_id.get(name)
        labels = node_labels(config)

        parent = build_parent(config, annotation)
        if parent and parent not in parent_map:
            label_pos = (annotation.groupLabelPos if annotation else None) or labels.get(LABEL_GROUP_LABEL_POS)
            parent_map[parent] = label_pos

        longname = f"{full_prefix}-{name}" if full_prefix else name
        container = None
        if include_container_data:
            container = find_container_node(labs, longname, lab_name)
            if container is None:
                logger.debug(f"No running container found for {longname}")

        extra: dict[str, Any] = {key: value for key, value in config.items() if key != "labels"}
        extra.update(
            {
                "id": name,
                "name": name,
                "shortname": name,
                "longname": longname,
                "fqdn": f"{name}.{lab_name}.io",
                "kind": config.get("kind") or "",
                "type": config.get("type") or "",
                "image": config.get("image") or "",
                "group": config.get("group") or "",
                "index": str(index),
                "labdir": labdir,
                "labels": strip_legacy_labels(labels),
                "state": container.state if container else "",
                "mgmtIpv4Address": container.IPv4Address if container else "",
                "mgmtIpv6Address": container.IPv6Address if container else "",
                "macAddress": "",
                "mgmtIntf": "",
                "mgmtNet": "",
                "weight": "3",
            }
        )

        lat, lng = node_geo(config, annotation)
        data: dict[str, Any] = {
            "id": name,
            "weight": NODE_WEIGHT,
            "name": name,
            "topoViewerRole": node_role(config, annotation),
            "lat": lat,
            "lng": lng,
            "extraData": extra,
        }
        if parent:
            data["parent"] = parent
        if annotation is not None and annotation.iconColor:
            data["iconColor"] = annotation.iconColor
        if annotation is not None and annotation.iconCornerRadius is not None:
            data["iconCornerRadius"] = annotation.iconCornerRadius

        elements.append(node_element(data, node_position(config, annotation)))


def add_group_nodes(parent_map: Mapping[str, str | None], elements: list[dict[str, Any]]) -> None:
    """Append one group node per parent id, in first-seen order."""
    for parent_id, label_pos in parent_map.items():
        group_name, _, group_level = parent_id.partition(":")
        data = {
            "id": parent_id,
            "name": group_name or "UnnamedGroup",
            "topoViewerRole": NodeRole.GROUP.value,
            "weight": GROUP_WEIGHT,
            "parent": "",
            "lat": "",
            "lng": "",
            "extraData": {
                "weight": "2",
                "name": "",
                "topoViewerGroup": group_name,
                "topoViewerGroupLevel": group_level,
            },
        }
        elements.append(node_element(data, classes=label_pos or ""))
