"""Synthesized "cloud" nodes for link endpoints that are not containers.

Host taps, management-network taps, macvlan and vxlan passthroughs and dummy
terminations have no entry in ``topology.nodes``. They are discovered from
the links, deduplicated by their special identity (``host:eno1``,
``vxlan:192.0.2.1/100/4789/``...) and emitted as nodes with role ``cloud``.
Declared bridge/ovs-bridge nodes are folded into the same map so they share
the placement and aliasing pipeline.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Collection, Mapping

from clabgraph.enums import LinkType, NodeRole
from clabgraph.schemas import CloudNodeAnnotation, TopologyAnnotations
from clabgraph.services.elements import NODE_WEIGHT, node_element
from clabgraph.services.link_parser import (
    CompileContext,
    Endpoint,
    extract_endpoint_mac,
    normalize_link_to_two_endpoints,
    resolve_actual_node,
    special_type_of,
    split_endpoint,
)
from clabgraph.services.node_builder import DEFAULT_GROUP_LEVEL, declared_nodes, is_bridge_kind, resolve_node_config, topology_section
from clabgraph.utils.maps import merge_if_absent, set_if_absent

logger = logging.getLogger(__name__)

SPECIAL_NODE_CLASS = "special-endpoint"


@dataclass(frozen=True)
class SpecialNodeInfo:
    type: str
    label: str


def _special_props(kind: LinkType, link: Mapping[str, Any], endpoint: Endpoint) -> dict[str, Any]:
    """Extra properties a special node inherits from a link that references it."""
    props: dict[str, Any] = {"extType": kind.value}
    if kind in (LinkType.HOST, LinkType.MGMT_NET, LinkType.MACVLAN):
        props["extHostInterface"] = link.get("host-interface") or endpoint.iface
        if kind is LinkType.MACVLAN:
            props["extMode"] = link.get("mode")
    elif kind in (LinkType.VXLAN, LinkType.VXLAN_STITCH):
        props["extRemote"] = link.get("remote")
        props["extVni"] = link.get("vni")
        props["extDstPort"] = link.get("dst-port")
        props["extSrcPort"] = link.get("src-port")
    props["extMac"] = extract_endpoint_mac(link.get("endpoint"))
    return props


def collect_special_nodes(
    doc: Mapping[str, Any],
    ctx: CompileContext,
) -> tuple[dict[str, SpecialNodeInfo], dict[str, dict[str, Any]]]:
    """Walk every link and collect special identities with their properties.

    Properties are merged first-write-wins: a later link referencing the same
    identity only fills keys that are still missing.

    Returns:
        (special_nodes, special_node_props), both keyed by identity
    """
    special_nodes: dict[str, SpecialNodeInfo] = {}
    special_node_props: dict[str, dict[str, Any]] = {}

    links = topology_section(doc).get("links")
    for link in links if isinstance(links, list) else []:
        normalized = normalize_link_to_two_endpoints(link, ctx)
        if normalized is None:
            continue
        for raw in (normalized.end_a, normalized.end_b):
            endpoint = split_endpoint(raw)
            node_id = resolve_actual_node(endpoint.node, endpoint.iface)
            kind = special_type_of(node_id)
            if kind is None:
                continue
            set_if_absent(special_nodes, node_id, SpecialNodeInfo(type=kind.value, label=node_id))
            props = special_node_props.setdefault(node_id, {})
            merge_if_absent(props, _special_props(kind, link, endpoint))

    for name, node in declared_nodes(doc).items():
        config = resolve_node_config(doc, node)
        if is_bridge_kind(config.get("kind")):
            set_if_absent(special_nodes, str(name), SpecialNodeInfo(type=LinkType.BRIDGE.value, label=str(name)))

    logger.debug(f"Collected {len(special_nodes)} special nodes")
    return special_nodes, special_node_props


def build_cloud_annotation_index(annotations: TopologyAnnotations | None) -> dict[str, CloudNodeAnnotation]:
    if annotations is None:
        return {}
    return {ann.id: ann for ann in annotations.cloudNodeAnnotations or []}


def add_cloud_nodes(
    special_nodes: Mapping[str, SpecialNodeInfo],
    special_node_props: Mapping[str, Mapping[str, Any]],
    annotations: TopologyAnnotations | None,
    elements: list[dict[str, Any]],
    skip_ids: Collection[str] = (),
) -> None:
    """Append a cloud node for every special identity not in ``skip_ids``.

    Placement comes from the matching cloud-node annotation when there is
    one, else ``{0, 0}`` with no parent. Name precedence: annotation label,
    then the collected label, then the identity itself.
    A skipped identity that is not a declared bridge is logged as a warning.
    """
    by_id = build_cloud_annotation_index(annotations)

    for node_id, info in special_nodes.items():
        if node_id in skip_ids:
            if info.type != LinkType.BRIDGE.value:
                logger.warning(f"Special endpoint {node_id} collides with a declared node; skipping cloud node")
            continue
        annotation = by_id.get(node_id)

        position = {"x": 0, "y": 0}
        parent = ""
        name = info.label or node_id
        if annotation is not None:
            if annotation.position is not None:
                position = {"x": annotation.position.x, "y": annotation.position.y}
            if annotation.group not in (None, ""):
                level = annotation.level if annotation.level not in (None, "") else DEFAULT_GROUP_LEVEL
                parent = f"{annotation.group}:{level}"
            if annotation.label:
                name = annotation.label

        extra: dict[str, Any] = {
            "id": node_id,
            "name": name,
            "shortname": node_id,
            "longname": node_id,
            "kind": info.type,
            "type": info.type,
            "image": "",
            "labels": {},
            "state": "",
            "weight": "3",
        }
        extra.update(special_node_props.get(node_id, {}))

        data: dict[str, Any] = {
            "id": node_id,
            "weight": NODE_WEIGHT,
            "name": name,
            "topoViewerRole": NodeRole.CLOUD.value,
            "lat": "",
            "lng": "",
            "extraData": extra,
        }
        if parent:
            data["parent"] = parent
        elements.append(node_element(data, position, classes=SPECIAL_NODE_CLASS))
