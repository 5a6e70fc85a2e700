"""Convert an edited canvas payload back into annotations.

The payload is the element list the editor sends on save: the compiled
elements with whatever the user moved, regrouped or restyled. Regular nodes
and bridge aliases become node annotations; cloud nodes become cloud-node
annotations. Free text, free shapes and group styles are owned by other
editors and pass through untouched.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping

from clabgraph.enums import LinkType, NodeRole
from clabgraph.schemas import CloudNodeAnnotation, NodeAnnotation, TopologyAnnotations
from clabgraph.services.elements import is_edge, is_node
from clabgraph.services.link_parser import is_special_node_id
from clabgraph.services.node_builder import is_bridge_kind

logger = logging.getLogger(__name__)

NON_REGULAR_ROLES = (
    NodeRole.GROUP.value,
    NodeRole.CLOUD.value,
    NodeRole.FREE_TEXT.value,
    NodeRole.FREE_SHAPE.value,
)

# Cloud annotations for these types are keyed by node name
NAME_KEYED_CLOUD_TYPES = (LinkType.HOST.value, LinkType.MGMT_NET.value, LinkType.MACVLAN.value)

# Node annotation keys written from the payload; anything else is carried over
MANAGED_NODE_KEYS = frozenset(
    {
        "id",
        "label",
        "icon",
        "iconColor",
        "iconCornerRadius",
        "position",
        "group",
        "level",
        "geoCoordinates",
        "yamlNodeId",
        "yamlInterface",
    }
)


def _data(el: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not el:
        return {}
    return el.get("data") or {}


def _extra(el: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return _data(el).get("extraData") or {}


def _parent(el: Mapping[str, Any]) -> Any:
    return _data(el).get("parent") or el.get("parent")


def _round(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(math.floor(number + 0.5))


def _rounded_position(el: Mapping[str, Any]) -> dict[str, int]:
    position = el.get("position") or {}
    return {"x": _round(position.get("x")), "y": _round(position.get("y"))}


def _valid_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def is_regular_node(el: Mapping[str, Any] | None) -> bool:
    if not el or not is_node(el):
        return False
    data = _data(el)
    if data.get("topoViewerRole") in NON_REGULAR_ROLES:
        return False
    return not is_special_node_id(str(data.get("id") or ""))


def set_node_position(
    ann: dict[str, Any],
    el: Mapping[str, Any],
    prev: NodeAnnotation | None = None,
    geo_layout_active: bool = False,
) -> None:
    """Rounded canvas position; in geo layout the stored position is kept."""
    if geo_layout_active:
        if prev is not None and prev.position is not None:
            ann["position"] = {"x": prev.position.x, "y": prev.position.y}
        return
    ann["position"] = _rounded_position(el)


def add_geo(ann: dict[str, Any], el: Mapping[str, Any]) -> None:
    data = _data(el)
    lat = _valid_float(data.get("lat"))
    lng = _valid_float(data.get("lng"))
    if lat is not None and lng is not None:
        ann["geoCoordinates"] = {"lat": lat, "lng": lng}


def add_group_info(ann: dict[str, Any], parent: Any) -> None:
    """Split a ``<group>:<level>`` parent id into group and level."""
    if not isinstance(parent, str):
        return
    group, sep, level = parent.partition(":")
    if sep and group and level:
        ann["group"] = group
        ann["level"] = level


def apply_node_icon_style(ann: dict[str, Any], data: Mapping[str, Any]) -> None:
    color = data.get("iconColor")
    if isinstance(color, str) and color.strip():
        ann["iconColor"] = color.strip()
    else:
        ann.pop("iconColor", None)

    radius = _valid_float(data.get("iconCornerRadius"))
    if radius is not None and radius > 0:
        ann["iconCornerRadius"] = int(radius) if radius.is_integer() else radius
    else:
        ann.pop("iconCornerRadius", None)


def first_interface(names: Iterable[str] | None) -> str:
    """Alphabetically first interface name, or ''."""
    if not names:
        return ""
    return min(names, default="")


def collect_alias_interfaces_by_alias_id(payload: Iterable[Mapping[str, Any]]) -> dict[str, set[str]]:
    """Interfaces carried by each node id, read from the edges."""
    interfaces: dict[str, set[str]] = {}
    for el in payload:
        if not is_edge(el):
            continue
        data = _data(el)
        for side, endpoint_key in (("source", "sourceEndpoint"), ("target", "targetEndpoint")):
            node_id = data.get(side)
            iface = data.get(endpoint_key)
            if node_id and iface:
                interfaces.setdefault(node_id, set()).add(iface)
    return interfaces


def is_bridge_kind_node(el: Mapping[str, Any] | None) -> bool:
    return is_bridge_kind(_extra(el).get("kind"))


def is_bridge_alias_node(el: Mapping[str, Any] | None) -> bool:
    """Bridge-role node whose ``extYamlNodeId`` names a different node."""
    if not el:
        return False
    data = _data(el)
    base_id = _extra(el).get("extYamlNodeId")
    if data.get("topoViewerRole") != NodeRole.BRIDGE.value:
        return False
    return bool(base_id) and base_id != data.get("id")


def compute_stable_annotation_id(
    node_id: str,
    node_by_id: Mapping[str, Mapping[str, Any]],
    alias_interfaces: Mapping[str, set[str]],
) -> str:
    """``<base>:<iface>`` for bridge aliases, the node id otherwise."""
    node = node_by_id.get(node_id)
    if not is_bridge_alias_node(node):
        return node_id
    iface = first_interface(alias_interfaces.get(node_id))
    if not iface:
        return node_id
    return f"{_extra(node)['extYamlNodeId']}:{iface}"


def decorate_alias_annotation(
    ann: dict[str, Any],
    el: Mapping[str, Any],
    alias_interfaces: Mapping[str, set[str]],
) -> str | None:
    """Fill alias back-references; returns the stable id or None."""
    data = _data(el)
    base_id = _extra(el).get("extYamlNodeId")
    iface = first_interface(alias_interfaces.get(data.get("id")))
    if not base_id or not iface:
        return None
    stable_id = f"{base_id}:{iface}"
    ann["id"] = stable_id
    ann["yamlNodeId"] = base_id
    ann["yamlInterface"] = iface
    if data.get("name"):
        ann["label"] = data["name"]
    return stable_id


def collect_alias_base_set(payload: Iterable[Mapping[str, Any]]) -> set[str]:
    return {_extra(el)["extYamlNodeId"] for el in payload if is_node(el) and is_bridge_alias_node(el)}


def should_include_node_annotation(el: Mapping[str, Any], alias_bases: set[str]) -> bool:
    """Aliases are written; base bridges that have aliases are not."""
    if is_bridge_alias_node(el):
        return True
    return not (is_bridge_kind_node(el) and _data(el).get("id") in alias_bases)


def build_node_index(payload: Iterable[Mapping[str, Any]]) -> dict[str, Mapping[str, Any]]:
    return {_data(el)["id"]: el for el in payload if is_node(el) and _data(el).get("id")}


def create_node_annotation(
    el: Mapping[str, Any],
    alias_interfaces: Mapping[str, set[str]],
    prev_by_id: Mapping[str, NodeAnnotation],
    geo_layout_active: bool = False,
) -> NodeAnnotation:
    data = _data(el)
    node_id = str(data.get("id"))
    ann: dict[str, Any] = {"id": node_id, "icon": data.get("topoViewerRole")}

    if is_bridge_alias_node(el):
        decorate_alias_annotation(ann, el, alias_interfaces)
    prev = prev_by_id.get(ann["id"]) or prev_by_id.get(node_id)

    set_node_position(ann, el, prev, geo_layout_active)
    add_geo(ann, el)
    add_group_info(ann, _parent(el))
    apply_node_icon_style(ann, data)
    return NodeAnnotation.model_validate({k: v for k, v in ann.items() if v is not None})


def create_cloud_node_annotation(el: Mapping[str, Any]) -> CloudNodeAnnotation:
    data = _data(el)
    kind = _extra(el).get("kind")
    name = data.get("name")
    ann_id = name if kind in NAME_KEYED_CLOUD_TYPES and name else data.get("id")
    ann: dict[str, Any] = {
        "id": str(ann_id),
        "type": kind,
        "label": name,
        "position": _rounded_position(el),
    }
    add_group_info(ann, _parent(el))
    return CloudNodeAnnotation.model_validate({k: v for k, v in ann.items() if v is not None})


def merge_node_annotation_lists(
    primary: Iterable[NodeAnnotation],
    secondary: Iterable[NodeAnnotation],
) -> list[NodeAnnotation]:
    """Union by id: ``primary`` wins per key, ``secondary`` fills gaps."""
    merged: dict[str, dict[str, Any]] = {}
    for ann in primary:
        merged[ann.id] = ann.model_dump(exclude_none=True)
    for ann in secondary:
        fallback = ann.model_dump(exclude_none=True)
        current = merged.get(ann.id)
        if current is None:
            merged[ann.id] = fallback
            continue
        for key, value in fallback.items():
            current.setdefault(key, value)
    return [NodeAnnotation.model_validate(item) for item in merged.values()]


def apply_payload_to_annotations(
    annotations: TopologyAnnotations,
    payload: list[Mapping[str, Any]],
    geo_layout_active: bool = False,
) -> TopologyAnnotations:
    """Rebuild node and cloud-node annotations from ``payload``.

    Keys this writer does not manage (``groupLabelPos``, custom keys) are
    carried over from the previous annotation with the same id.
    """
    prev_by_id = {ann.id: ann for ann in annotations.nodeAnnotations or []}
    alias_interfaces = collect_alias_interfaces_by_alias_id(payload)
    alias_bases = collect_alias_base_set(payload)

    node_annotations: list[NodeAnnotation] = []
    cloud_annotations: list[CloudNodeAnnotation] = []
    for el in payload:
        if not is_node(el):
            continue
        role = _data(el).get("topoViewerRole")
        if role == NodeRole.CLOUD.value:
            cloud_annotations.append(create_cloud_node_annotation(el))
        elif is_regular_node(el) and should_include_node_annotation(el, alias_bases):
            node_annotations.append(create_node_annotation(el, alias_interfaces, prev_by_id, geo_layout_active))

    carried = []
    for ann in node_annotations:
        prev = prev_by_id.get(ann.id)
        if prev is None:
            continue
        unmanaged = {k: v for k, v in prev.model_dump(exclude_none=True).items() if k not in MANAGED_NODE_KEYS}
        carried.append(NodeAnnotation.model_validate({"id": ann.id, **unmanaged}))

    annotations.nodeAnnotations = merge_node_annotation_lists(node_annotations, carried)
    annotations.cloudNodeAnnotations = cloud_annotations
    logger.debug(
        f"Layout payload produced {len(node_annotations)} node and {len(cloud_annotations)} cloud annotations"
    )
    return annotations
