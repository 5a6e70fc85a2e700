"""Edge elements for ``topology.links``.

One edge per canonical link key: a link declared twice (in either order, or
once in short and once in extended notation) becomes a single edge, and the
first declaration supplies its properties. In view mode each side is matched
against the live inspection snapshot for interface state, MAC and counters.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from clabgraph.enums import LinkType, NodeRole
from clabgraph.schemas import InterfaceTreeNode, LabTreeNode
from clabgraph.services.canonical_links import canonical_from_pair, canonical_key_to_string
from clabgraph.services.elements import EDGE_WEIGHT, add_class, edge_element
from clabgraph.services.link_parser import (
    CompileContext,
    Endpoint,
    build_container_name,
    extract_endpoint_mac,
    is_special_node_id,
    normalize_link_to_two_endpoints,
    resolve_actual_node,
    should_omit_endpoint,
    split_endpoint,
)
from clabgraph.services.node_builder import declared_nodes, is_bridge_kind, resolve_node_config, topology_section
from clabgraph.utils.tree import find_interface_node

logger = logging.getLogger(__name__)

CLASS_LINK_UP = "link-up"
CLASS_LINK_DOWN = "link-down"
CLASS_STUB_LINK = "stub-link"

STATE_UP = "up"
STATE_DOWN = "down"

YAML_FORMAT_SHORT = "short"
YAML_FORMAT_EXTENDED = "extended"

# Validation error codes attached to extraData.extValidationErrors
ERR_INVALID_VETH_ENDPOINTS = "invalid-veth-endpoints"
ERR_INVALID_ENDPOINT = "invalid-endpoint"
ERR_MISSING_HOST_INTERFACE = "missing-host-interface"
ERR_MISSING_REMOTE = "missing-remote"
ERR_MISSING_VNI = "missing-vni"
ERR_MISSING_DST_PORT = "missing-dst-port"

# Counters copied from live interfaces into clab*Stats
STATS_KEYS = (
    "rxBps",
    "rxPps",
    "rxBytes",
    "rxPackets",
    "txBps",
    "txPps",
    "txBytes",
    "txPackets",
    "statsIntervalSeconds",
)

InterfaceData = InterfaceTreeNode | Mapping[str, Any] | None


# --- State classes -----------------------------------------------------------


def _iface_get(iface: InterfaceData, key: str) -> Any:
    if iface is None:
        return None
    if isinstance(iface, Mapping):
        return iface.get(key)
    return getattr(iface, key, None)


def class_from_state(iface: InterfaceData) -> str:
    state = _iface_get(iface, "state")
    if not isinstance(state, str):
        return ""
    state = state.strip().lower()
    if state == STATE_UP:
        return CLASS_LINK_UP
    if state == STATE_DOWN:
        return CLASS_LINK_DOWN
    return ""


def is_special_node(node: Mapping[str, Any] | None, name: str) -> bool:
    """True for bridge kinds and synthesized endpoint names."""
    if node is not None and is_bridge_kind(node.get("kind")):
        return True
    return is_special_node_id(name)


def edge_class_for_special(
    source_special: bool,
    target_special: bool,
    source_iface: InterfaceData,
    target_iface: InterfaceData,
) -> str:
    """A special side has no interface of its own; the other side decides."""
    if source_special and not target_special:
        return class_from_state(target_iface)
    if target_special and not source_special:
        return class_from_state(source_iface)
    return CLASS_LINK_UP


def _combine_classes(source_class: str, target_class: str) -> str:
    if CLASS_LINK_DOWN in (source_class, target_class):
        return CLASS_LINK_DOWN
    if source_class == CLASS_LINK_UP and target_class == CLASS_LINK_UP:
        return CLASS_LINK_UP
    return ""


def compute_edge_class(
    source: str,
    target: str,
    source_iface: InterfaceData,
    target_iface: InterfaceData,
    doc: Mapping[str, Any] | None = None,
) -> str:
    nodes = declared_nodes(doc)
    source_special = is_special_node(_node_config(doc, nodes, source), source)
    target_special = is_special_node(_node_config(doc, nodes, target), target)
    if source_special or target_special:
        return edge_class_for_special(source_special, target_special, source_iface, target_iface)
    return _combine_classes(class_from_state(source_iface), class_from_state(target_iface))


def compute_edge_class_from_states(
    doc: Mapping[str, Any] | None,
    source: str,
    target: str,
    source_state: str | None,
    target_state: str | None,
) -> str:
    return compute_edge_class(source, target, {"state": source_state}, {"state": target_state}, doc)


def _node_config(doc: Mapping[str, Any] | None, nodes: Mapping[str, Any], name: str) -> dict[str, Any] | None:
    node = nodes.get(name)
    if node is None:
        return None
    return resolve_node_config(doc, node)


# --- Validation --------------------------------------------------------------


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_veth_link(link: Mapping[str, Any]) -> list[str]:
    endpoints = link.get("endpoints")
    if not isinstance(endpoints, list) or len(endpoints) < 2:
        return [ERR_INVALID_VETH_ENDPOINTS]
    for endpoint in endpoints[:2]:
        if not isinstance(endpoint, Mapping) or _missing(endpoint.get("node")):
            return [ERR_INVALID_VETH_ENDPOINTS]
    return []


def validate_special_link(link_type: str, link: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []
    endpoint = link.get("endpoint")
    if isinstance(endpoint, Mapping):
        if _missing(endpoint.get("node")):
            errors.append(ERR_INVALID_ENDPOINT)
    elif not isinstance(endpoint, str) or not endpoint.strip():
        errors.append(ERR_INVALID_ENDPOINT)

    kind = LinkType.parse(link_type)
    if kind in (LinkType.HOST, LinkType.MGMT_NET, LinkType.MACVLAN):
        if _missing(link.get("host-interface")):
            errors.append(ERR_MISSING_HOST_INTERFACE)
    if kind in (LinkType.VXLAN, LinkType.VXLAN_STITCH):
        if _missing(link.get("remote")):
            errors.append(ERR_MISSING_REMOTE)
        if _missing(link.get("vni")):
            errors.append(ERR_MISSING_VNI)
        if _missing(link.get("dst-port")):
            errors.append(ERR_MISSING_DST_PORT)
    return errors


def validate_extended_link(link: Mapping[str, Any]) -> list[str]:
    """Validation errors for an extended-format link; [] for short format."""
    kind = LinkType.parse(link.get("type"))
    if kind is None:
        return []
    if kind is LinkType.VETH:
        return validate_veth_link(link)
    if kind.is_single_endpoint:
        return validate_special_link(kind.value, link)
    return []


# --- extraData ----------------------------------------------------------------


def extract_edge_interface_stats(iface: InterfaceData) -> dict[str, int | float] | None:
    """Finite numeric counters of an interface, or None when there are none.

    Counters are read from a nested ``stats`` mapping when present, else from
    the interface itself. Non-numeric and non-finite values are dropped one
    by one.
    """
    if iface is None:
        return None
    if isinstance(iface, Mapping):
        source = iface.get("stats") if isinstance(iface.get("stats"), Mapping) else iface
    elif iface.stats:
        source = iface.stats
    else:
        source = iface.model_extra or {}

    stats: dict[str, int | float] = {}
    for key in STATS_KEYS:
        value = source.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value):
            stats[key] = value
    return stats or None


def create_clab_info(
    *,
    source_container_name: str,
    target_container_name: str,
    source_iface: str,
    target_iface: str,
    source_iface_data: InterfaceData = None,
    target_iface_data: InterfaceData = None,
) -> dict[str, Any]:
    info: dict[str, Any] = {
        "clabServerUsername": "",
        "clabSourceLongName": source_container_name,
        "clabTargetLongName": target_container_name,
        "clabSourcePort": source_iface,
        "clabTargetPort": target_iface,
        "clabSourceMacAddress": _iface_get(source_iface_data, "mac") or "",
        "clabTargetMacAddress": _iface_get(target_iface_data, "mac") or "",
    }
    source_state = _iface_get(source_iface_data, "state")
    target_state = _iface_get(target_iface_data, "state")
    if source_state:
        info["clabSourceInterfaceState"] = source_state
    if target_state:
        info["clabTargetInterfaceState"] = target_state
    source_stats = extract_edge_interface_stats(source_iface_data)
    target_stats = extract_edge_interface_stats(target_iface_data)
    if source_stats:
        info["clabSourceStats"] = source_stats
    if target_stats:
        info["clabTargetStats"] = target_stats
    return info


def extract_ext_link_props(link: Mapping[str, Any] | None) -> dict[str, Any]:
    link = link if isinstance(link, Mapping) else {}

    def value(key: str) -> Any:
        found = link.get(key)
        return "" if found is None else found

    return {
        "extType": value("type"),
        "extMtu": value("mtu"),
        "extVars": value("vars"),
        "extLabels": value("labels"),
        "extHostInterface": value("host-interface"),
        "extMode": value("mode"),
        "extRemote": value("remote"),
        "extVni": value("vni"),
        "extDstPort": value("dst-port"),
        "extSrcPort": value("src-port"),
    }


def extract_ext_macs(link: Mapping[str, Any] | None, end_a: Any, end_b: Any) -> dict[str, str]:
    link = link if isinstance(link, Mapping) else {}
    return {
        "extSourceMac": extract_endpoint_mac(end_a),
        "extTargetMac": extract_endpoint_mac(end_b),
        "extMac": extract_endpoint_mac(link.get("endpoint")),
    }


def create_ext_info(link: Mapping[str, Any] | None, end_a: Any, end_b: Any) -> dict[str, Any]:
    return {**extract_ext_link_props(link), **extract_ext_macs(link, end_a, end_b)}


def build_edge_extra_data(
    *,
    link: Mapping[str, Any],
    end_a: Any,
    end_b: Any,
    clab_info: Mapping[str, Any],
    validation_errors: list[str],
    source_node_id: str,
    target_node_id: str,
) -> dict[str, Any]:
    extra: dict[str, Any] = {**clab_info, **create_ext_info(link, end_a, end_b)}
    extra["yamlFormat"] = YAML_FORMAT_EXTENDED if link.get("type") else YAML_FORMAT_SHORT
    extra["yamlSourceNodeId"] = source_node_id
    extra["yamlTargetNodeId"] = target_node_id
    if validation_errors:
        extra["extValidationErrors"] = list(validation_errors)
    return extra


def build_edge_classes(edge_class: str, special_nodes: Mapping[str, Any], source: str, target: str) -> str:
    classes = edge_class
    if source in special_nodes or target in special_nodes:
        classes = add_class(classes, CLASS_STUB_LINK)
    return classes


# --- Elements -----------------------------------------------------------------


@dataclass
class EdgeBuildResult:
    """Edges emitted by one pass plus the keys they were deduplicated on."""

    count: int = 0
    keys: dict[str, str] = field(default_factory=dict)  # canonical key -> edge id


def _side(endpoint: Endpoint, full_prefix: str) -> tuple[str, str, str]:
    """(graph node id, interface shown on the edge, container long name)"""
    actual = resolve_actual_node(endpoint.node, endpoint.iface)
    shown = "" if should_omit_endpoint(endpoint.node) else endpoint.iface
    return actual, shown, build_container_name(endpoint.node, actual, full_prefix)


def add_edge_elements(
    doc: Mapping[str, Any],
    *,
    ctx: CompileContext,
    special_nodes: Mapping[str, Any],
    full_prefix: str,
    lab_name: str,
    elements: list[dict[str, Any]],
    labs: Mapping[str, LabTreeNode] | None = None,
    include_container_data: bool = False,
) -> EdgeBuildResult:
    """Append one edge per canonical link.

    Malformed links are skipped with a warning. Edge ids are ``Clab-Link<N>``
    counting emitted edges from 0.
    """
    result = EdgeBuildResult()
    links = topology_section(doc).get("links")
    if not isinstance(links, list):
        return result

    for position, link in enumerate(links):
        normalized = normalize_link_to_two_endpoints(link, ctx)
        if normalized is None:
            logger.warning(f"Skipping link #{position}: it does not have two usable endpoints")
            continue

        source_ep = split_endpoint(normalized.end_a)
        target_ep = split_endpoint(normalized.end_b)
        key = canonical_key_to_string(
            canonical_from_pair(
                Endpoint(source_ep.node, source_ep.iface),
                Endpoint(target_ep.node, target_ep.iface),
            )
        )
        if key in result.keys:
            logger.debug(f"Link #{position} duplicates {result.keys[key]} ({key})")
            continue

        source, source_shown, source_container = _side(source_ep, full_prefix)
        target, target_shown, target_container = _side(target_ep, full_prefix)

        source_data: InterfaceTreeNode | None = None
        target_data: InterfaceTreeNode | None = None
        edge_class = ""
        if include_container_data:
            if not is_special_node_id(source):
                source_data = find_interface_node(labs, source_container, source_ep.iface, lab_name)
            if not is_special_node_id(target):
                target_data = find_interface_node(labs, target_container, target_ep.iface, lab_name)
            edge_class = compute_edge_class(source, target, source_data, target_data, doc)

        clab_info = create_clab_info(
            source_container_name=source_container,
            target_container_name=target_container,
            source_iface=source_ep.iface,
            target_iface=target_ep.iface,
            source_iface_data=source_data,
            target_iface_data=target_data,
        )
        edge_id = f"Clab-Link{result.count}"
        data = {
            "id": edge_id,
            "weight": EDGE_WEIGHT,
            "name": edge_id,
            "parent": "",
            "topoViewerRole": NodeRole.LINK.value,
            "source": source,
            "target": target,
            "sourceEndpoint": source_shown,
            "targetEndpoint": target_shown,
            "lat": "",
            "lng": "",
            "extraData": build_edge_extra_data(
                link=link,
                end_a=normalized.end_a,
                end_b=normalized.end_b,
                clab_info=clab_info,
                validation_errors=validate_extended_link(link),
                source_node_id=source,
                target_node_id=target,
            ),
        }
        elements.append(edge_element(data, build_edge_classes(edge_class, special_nodes, source, target)))
        result.keys[key] = edge_id
        result.count += 1

    return result
