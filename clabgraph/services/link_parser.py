"""Endpoint parsing for containerlab link declarations.

Containerlab accepts several notations for the same thing:

- short format: ``endpoints: ["r1:eth1", "r2:eth1"]``
- extended format: ``endpoints: [{node: r1, interface: eth1, mac: ...}, ...]``
- single-endpoint links: ``{type: host, endpoint: r1:eth1, host-interface: veth0}``
  (also mgmt-net, macvlan, vxlan, vxlan-stitch, dummy)

This module reduces every notation to ``(node, interface)`` pairs and every
link to two endpoints plus an optional type tag. Special endpoints are
encoded as node names with reserved prefixes (``host:veth0``,
``macvlan:enp0s3``, ``vxlan:192.0.2.1/100/4789/``, ``dummy1``) and are never
split further.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from clabgraph.enums import SINGLE_ENDPOINT_TYPES, LinkType

logger = logging.getLogger(__name__)


STR_HOST = "host"
STR_MGMT_NET = "mgmt-net"
PREFIX_MACVLAN = "macvlan:"
PREFIX_VXLAN = "vxlan:"
PREFIX_VXLAN_STITCH = "vxlan-stitch:"
PREFIX_DUMMY = "dummy"

# Node names that are kept whole instead of being split on their colon.
UNSPLIT_PREFIXES = (PREFIX_MACVLAN, PREFIX_VXLAN, PREFIX_VXLAN_STITCH)


@dataclass(frozen=True)
class Endpoint:
    """A ``(node, interface)`` pair; ``node`` may be a special identity."""

    node: str
    iface: str = ""
    mac: str = ""


@dataclass(frozen=True)
class NormalizedLink:
    """A link reduced to two raw endpoints and its declared type."""

    end_a: Any  # str or mapping, as declared
    end_b: Any  # str or mapping, or the synthesized special id
    type: str | None


@dataclass
class CompileContext:
    """Per-compile state threaded through the parser.

    Dummy links have no natural identity, so each link object gets a
    counter-based id the first time it is seen. The id is memoized by
    object identity, so asking twice for the same link returns the same id.
    One context belongs to one compile call.
    """

    dummy_counter: int = 0
    dummy_ids: dict[int, str] = field(default_factory=dict)
    # Links stay referenced so their id() cannot be recycled mid-compile.
    _anchors: list[Any] = field(default_factory=list, repr=False)

    def dummy_id_for(self, link: Any) -> str:
        key = id(link)
        existing = self.dummy_ids.get(key)
        if existing is not None:
            return existing
        self.dummy_counter += 1
        dummy_id = f"{PREFIX_DUMMY}{self.dummy_counter}"
        self.dummy_ids[key] = dummy_id
        self._anchors.append(link)
        return dummy_id


def _field_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def split_endpoint(raw: Any) -> Endpoint:
    """Split a declared endpoint into node and interface.

    Examples:
        "Spine-01:e1-1"           -> Endpoint("Spine-01", "e1-1")
        "Spine-01"                -> Endpoint("Spine-01", "")
        "macvlan:enp0s3"          -> Endpoint("macvlan:enp0s3", "")
        "a:b:c"                   -> Endpoint("a:b:c", "")
        {"node": "r1", "interface": "eth1"} -> Endpoint("r1", "eth1")
    """
    if isinstance(raw, str):
        if raw.startswith(UNSPLIT_PREFIXES):
            return Endpoint(node=raw)
        parts = raw.split(":")
        if len(parts) == 2:
            return Endpoint(node=parts[0], iface=parts[1])
        return Endpoint(node=raw)

    if isinstance(raw, Mapping):
        return Endpoint(
            node=_field_str(raw.get("node")),
            iface=_field_str(raw.get("interface")),
            mac=_field_str(raw.get("mac")),
        )

    return Endpoint(node="")


def extract_endpoint_mac(raw: Any) -> str:
    """Return the ``mac`` of a structured endpoint, or an empty string."""
    if isinstance(raw, Mapping):
        return _field_str(raw.get("mac"))
    return ""


def normalize_single_type_to_special_id(link_type: str | LinkType | None, link: Mapping[str, Any], ctx: CompileContext) -> str:
    """Build the special node identity implied by a single-endpoint link.

    Returns an empty string for types that have no special identity.
    """
    kind = LinkType.parse(link_type)
    host_interface = _field_str(link.get("host-interface"))

    if kind is LinkType.HOST:
        return f"{STR_HOST}:{host_interface}"
    if kind is LinkType.MGMT_NET:
        return f"{STR_MGMT_NET}:{host_interface}"
    if kind is LinkType.MACVLAN:
        return f"{PREFIX_MACVLAN}{host_interface}"
    if kind in (LinkType.VXLAN, LinkType.VXLAN_STITCH):
        prefix = PREFIX_VXLAN if kind is LinkType.VXLAN else PREFIX_VXLAN_STITCH
        remote = _field_str(link.get("remote"))
        vni = _field_str(link.get("vni"))
        dst_port = _field_str(link.get("dst-port"))
        src_port = _field_str(link.get("src-port"))
        return f"{prefix}{remote}/{vni}/{dst_port}/{src_port}"
    if kind is LinkType.DUMMY:
        return ctx.dummy_id_for(link)
    return ""


def normalize_link_to_two_endpoints(link: Any, ctx: CompileContext) -> NormalizedLink | None:
    """Reduce a link declaration to two endpoints.

    Links with an ``endpoints`` list pass through. Single-endpoint links
    get their special identity as the second endpoint. Anything missing an
    endpoint is dropped (None).
    """
    if not isinstance(link, Mapping):
        return None

    raw_type = link.get("type")
    link_type = raw_type if isinstance(raw_type, str) and raw_type else None

    endpoints = link.get("endpoints")
    if isinstance(endpoints, list):
        if len(endpoints) < 2 or not endpoints[0] or not endpoints[1]:
            logger.debug(f"Dropping link with incomplete endpoints: {endpoints!r}")
            return None
        return NormalizedLink(end_a=endpoints[0], end_b=endpoints[1], type=link_type)

    kind = LinkType.parse(link_type)
    if kind in SINGLE_ENDPOINT_TYPES:
        endpoint = link.get("endpoint")
        if not endpoint:
            logger.debug(f"Dropping {link_type} link without endpoint")
            return None
        special_id = normalize_single_type_to_special_id(kind, link, ctx)
        return NormalizedLink(end_a=endpoint, end_b=special_id, type=link_type)

    return None


def is_special_node_id(node: str) -> bool:
    """True for names that stand for a synthesized (non-container) node."""
    if not node:
        return False
    return (
        node == STR_HOST
        or node == STR_MGMT_NET
        or node.startswith(f"{STR_HOST}:")
        or node.startswith(f"{STR_MGMT_NET}:")
        or node.startswith(UNSPLIT_PREFIXES)
        or node.startswith(PREFIX_DUMMY)
    )


def resolve_actual_node(node: str, iface: str) -> str:
    """Map a split endpoint to the graph node id it attaches to.

    ``host``/``mgmt-net`` endpoints become ``host:<iface>`` /
    ``mgmt-net:<iface>``; every other node id is returned unchanged.
    """
    if node in (STR_HOST, STR_MGMT_NET):
        return f"{node}:{iface}"
    return node


def should_omit_endpoint(node: str) -> bool:
    """True when the interface label on this side of an edge is meaningless."""
    return (
        node in (STR_HOST, STR_MGMT_NET)
        or node.startswith(PREFIX_MACVLAN)
        or node.startswith(PREFIX_DUMMY)
    )


def build_container_name(node: str, actual_node: str, full_prefix: str) -> str:
    """Container long name for an endpoint.

    Special endpoints have no container and keep their graph id.
    """
    if is_special_node_id(node) or is_special_node_id(actual_node):
        return actual_node
    if full_prefix:
        return f"{full_prefix}-{node}"
    return node


def special_type_of(node_id: str) -> LinkType | None:
    """Link type implied by a special node id, or None for regular nodes."""
    if node_id == STR_HOST or node_id.startswith(f"{STR_HOST}:"):
        return LinkType.HOST
    if node_id == STR_MGMT_NET or node_id.startswith(f"{STR_MGMT_NET}:"):
        return LinkType.MGMT_NET
    if node_id.startswith(PREFIX_MACVLAN):
        return LinkType.MACVLAN
    if node_id.startswith(PREFIX_VXLAN_STITCH):
        return LinkType.VXLAN_STITCH
    if node_id.startswith(PREFIX_VXLAN):
        return LinkType.VXLAN
    if node_id.startswith(PREFIX_DUMMY):
        return LinkType.DUMMY
    return None
