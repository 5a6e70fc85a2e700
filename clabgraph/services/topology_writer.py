"""Write an edited canvas payload back into the topology document.

Nodes and links that survive the edit keep their original YAML bodies, so
hand-written details (env, binds, link vars...) are not lost on save. Only
nodes and links created in the editor are synthesised from ``extraData``.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Mapping

import yaml

from clabgraph.enums import LinkType
from clabgraph.services.bridge_interfaces import apply_id_override_to_edge_data, build_node_id_override_map
from clabgraph.services.canonical_links import (
    canonical_from_link,
    canonical_from_payload_edge,
    canonical_key_to_string,
    endpoint_is_special,
)
from clabgraph.services.edge_builder import YAML_FORMAT_EXTENDED
from clabgraph.services.elements import is_edge, is_node
from clabgraph.services.layout_writer import is_bridge_alias_node, is_regular_node
from clabgraph.services.link_parser import (
    CompileContext,
    Endpoint,
    normalize_link_to_two_endpoints,
    special_type_of,
)
from clabgraph.services.node_builder import declared_nodes, strip_legacy_labels, topology_section

logger = logging.getLogger(__name__)

NEW_NODE_KEYS = ("kind", "image", "type")

# extraData key -> link key, copied when set
COMMON_LINK_PROPS = (("extMtu", "mtu"), ("extVars", "vars"), ("extLabels", "labels"))
HOST_LINK_TYPES = (LinkType.HOST, LinkType.MGMT_NET, LinkType.MACVLAN)
VXLAN_LINK_PROPS = (("extRemote", "remote"), ("extVni", "vni"), ("extDstPort", "dst-port"), ("extSrcPort", "src-port"))


def _is_set(value: Any) -> bool:
    return value is not None and value != "" and value != {} and value != []


def build_link_index(doc: Mapping[str, Any] | None) -> dict[str, Any]:
    """Canonical key -> first declared link body."""
    index: dict[str, Any] = {}
    links = topology_section(doc).get("links")
    if not isinstance(links, list):
        return index
    ctx = CompileContext()
    for link in links:
        normalized = normalize_link_to_two_endpoints(link, ctx)
        if normalized is None:
            continue
        key = canonical_key_to_string(canonical_from_link(normalized.end_a, normalized.end_b))
        index.setdefault(key, link)
    return index


def _clean_node_body(body: Any) -> Any:
    if not isinstance(body, Mapping):
        return copy.deepcopy(body)
    cleaned = copy.deepcopy(dict(body))
    labels = cleaned.get("labels")
    if isinstance(labels, Mapping):
        stripped = strip_legacy_labels(labels)
        if stripped:
            cleaned["labels"] = stripped
        else:
            cleaned.pop("labels")
    return cleaned


def new_node_body(extra: Mapping[str, Any]) -> dict[str, Any]:
    return {key: extra[key] for key in NEW_NODE_KEYS if _is_set(extra.get(key))}


def build_nodes(doc: Mapping[str, Any] | None, payload: list[Mapping[str, Any]]) -> dict[str, Any]:
    """Node section for the regular nodes present in ``payload``.

    Declared order is kept for surviving nodes; new nodes follow in payload
    order. Alias nodes are not YAML nodes.
    """
    existing = declared_nodes(doc)
    present: dict[str, Mapping[str, Any]] = {}
    for el in payload:
        if not is_regular_node(el) or is_bridge_alias_node(el):
            continue
        data = el["data"]
        present.setdefault(str(data["id"]), data.get("extraData") or {})

    nodes: dict[str, Any] = {}
    for name, body in existing.items():
        if str(name) in present:
            nodes[str(name)] = _clean_node_body(body)
    for name, extra in present.items():
        if name not in nodes:
            nodes[name] = new_node_body(extra)
            logger.debug(f"Adding node {name!r} from editor payload")

    removed = [str(name) for name in existing if str(name) not in present]
    if removed:
        logger.info(f"Removing {len(removed)} node(s) not present in the editor: {', '.join(removed)}")
    return nodes


def _structured_endpoint(node: str, iface: str, mac: Any = None) -> dict[str, Any]:
    endpoint: dict[str, Any] = {"node": node, "interface": iface}
    if _is_set(mac):
        endpoint["mac"] = mac
    return endpoint


def _host_interface_from_id(node_id: str) -> str:
    _, _, rest = node_id.partition(":")
    return rest


def _vxlan_parts_from_id(node_id: str) -> dict[str, str]:
    _, _, rest = node_id.partition(":")
    parts = rest.split("/")
    keys = ("remote", "vni", "dst-port", "src-port")
    return {key: value for key, value in zip(keys, parts) if value}


def build_special_link(
    link_type: LinkType,
    special_id: str,
    endpoint: Endpoint,
    extra: Mapping[str, Any],
) -> dict[str, Any]:
    """Single-endpoint link for an edge to a host, macvlan, vxlan or dummy node."""
    link: dict[str, Any] = {
        "type": link_type.value,
        "endpoint": _structured_endpoint(endpoint.node, endpoint.iface, extra.get("extMac")),
    }
    if link_type in HOST_LINK_TYPES:
        host_interface = extra.get("extHostInterface")
        link["host-interface"] = host_interface if _is_set(host_interface) else _host_interface_from_id(special_id)
        if link_type is LinkType.MACVLAN and _is_set(extra.get("extMode")):
            link["mode"] = extra["extMode"]
    elif link_type in (LinkType.VXLAN, LinkType.VXLAN_STITCH):
        from_id = _vxlan_parts_from_id(special_id)
        for ext_key, link_key in VXLAN_LINK_PROPS:
            value = extra.get(ext_key)
            if _is_set(value):
                link[link_key] = value
            elif link_key in from_id:
                link[link_key] = from_id[link_key]
    for ext_key, link_key in COMMON_LINK_PROPS:
        if _is_set(extra.get(ext_key)):
            link[link_key] = extra[ext_key]
    return link


def build_veth_link(source: Endpoint, target: Endpoint, extra: Mapping[str, Any]) -> dict[str, Any]:
    if extra.get("yamlFormat") != YAML_FORMAT_EXTENDED:
        return {"endpoints": [f"{source.node}:{source.iface}", f"{target.node}:{target.iface}"]}
    link: dict[str, Any] = {
        "type": LinkType.VETH.value,
        "endpoints": [
            _structured_endpoint(source.node, source.iface, extra.get("extSourceMac")),
            _structured_endpoint(target.node, target.iface, extra.get("extTargetMac")),
        ],
    }
    for ext_key, link_key in COMMON_LINK_PROPS:
        if _is_set(extra.get(ext_key)):
            link[link_key] = extra[ext_key]
    return link


def link_from_edge(data: Mapping[str, Any]) -> dict[str, Any]:
    """Synthesise a link body from canvas edge data (alias ids already mapped)."""
    extra = data.get("extraData") or {}
    source = Endpoint(str(data["source"]), str(data.get("sourceEndpoint") or ""))
    target = Endpoint(str(data["target"]), str(data.get("targetEndpoint") or ""))
    source_special = endpoint_is_special(source)
    if source_special != endpoint_is_special(target):
        special, endpoint = (source, target) if source_special else (target, source)
        link_type = special_type_of(special.node)
        if link_type is not None:
            return build_special_link(link_type, special.node, endpoint, extra)
    return build_veth_link(source, target, extra)


def build_links(
    doc: Mapping[str, Any] | None,
    payload: list[Mapping[str, Any]],
    node_names: set[str],
) -> list[Any]:
    """One link per canonical key among the payload edges.

    Edges whose regular endpoint is not a written node are dropped.
    """
    existing = build_link_index(doc)
    overrides = build_node_id_override_map(payload)
    links: list[Any] = []
    seen: set[str] = set()
    for el in payload:
        if not is_edge(el):
            continue
        data = apply_id_override_to_edge_data(el.get("data") or {}, overrides)
        key = canonical_from_payload_edge(data)
        if key is None:
            continue
        key_str = canonical_key_to_string(key)
        if key_str in seen:
            continue

        dangling = [
            node for node in (data["source"], data["target"])
            if special_type_of(str(node)) is None and str(node) not in node_names
        ]
        if dangling:
            logger.warning(f"Dropping edge {data.get('id')!r}: unknown node(s) {', '.join(map(str, dangling))}")
            continue

        seen.add(key_str)
        if key_str in existing:
            links.append(copy.deepcopy(existing[key_str]))
        else:
            links.append(link_from_edge(data))
    return links


def apply_payload_to_topology(doc: Mapping[str, Any] | None, payload: list[Mapping[str, Any]]) -> dict[str, Any]:
    """Return a new document with nodes and links taken from ``payload``.

    Every other key of the document is copied unchanged.
    """
    result = copy.deepcopy(dict(doc)) if isinstance(doc, Mapping) else {}
    topology = result.get("topology")
    if not isinstance(topology, dict):
        topology = {}
        result["topology"] = topology

    nodes = build_nodes(doc, payload)
    links = build_links(doc, payload, set(nodes))
    topology["nodes"] = nodes
    if links or "links" in topology:
        topology["links"] = links
    logger.debug(f"Topology rebuilt with {len(nodes)} nodes and {len(links)} links")
    return result


def dump_topology_yaml(doc: Mapping[str, Any]) -> str:
    return yaml.safe_dump(dict(doc), sort_keys=False, default_flow_style=False)
