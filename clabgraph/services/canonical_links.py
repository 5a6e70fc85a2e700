"""Order-independent link identities.

The same physical link can be declared as ``[a, b]`` or ``[b, a]``, in short
or extended notation, or (on the editor side) as a canvas edge. All of these
reduce to one ``CanonicalLinkKey`` whose string form is used for dedup.

- veth: ``veth|<min endpoint>|<max endpoint>``
- special types: ``<type>|<non-special endpoint>``
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from clabgraph.enums import LinkType
from clabgraph.services.link_parser import Endpoint, is_special_node_id, special_type_of, split_endpoint


@dataclass(frozen=True)
class CanonicalLinkKey:
    type: LinkType
    a: Endpoint
    b: Endpoint | None = None


def _as_endpoint(value: Endpoint | str | Mapping[str, Any]) -> Endpoint:
    if isinstance(value, Endpoint):
        return value
    return split_endpoint(value)


def endpoint_is_special(endpoint: Endpoint | str | Mapping[str, Any]) -> bool:
    return is_special_node_id(_as_endpoint(endpoint).node)


def split_endpoint_canonical(raw: Any) -> Endpoint:
    """Split an endpoint dropping the mac, which is not part of link identity."""
    endpoint = split_endpoint(raw)
    return Endpoint(node=endpoint.node, iface=endpoint.iface)


def link_type_from_special(endpoint: Endpoint) -> LinkType | None:
    return special_type_of(endpoint.node)


def select_non_special(x: Endpoint, y: Endpoint | None) -> Endpoint:
    """Return ``x`` unless ``x`` is special and ``y`` is not."""
    if y is not None and endpoint_is_special(x) and not endpoint_is_special(y):
        return y
    return x


def _endpoint_str(endpoint: Endpoint) -> str:
    return f"{endpoint.node}:{endpoint.iface}"


def canonical_key_to_string(key: CanonicalLinkKey) -> str:
    if key.type is LinkType.VETH and key.b is not None:
        first, second = sorted((_endpoint_str(key.a), _endpoint_str(key.b)))
        return f"{LinkType.VETH.value}|{first}|{second}"
    return f"{key.type.value}|{_endpoint_str(key.a)}"


def canonical_from_pair(a: Endpoint, b: Endpoint) -> CanonicalLinkKey:
    """Build the key for a link between two split endpoints.

    Two special endpoints fall back to a plain veth key.
    """
    a_special = endpoint_is_special(a)
    b_special = endpoint_is_special(b)
    if a_special != b_special:
        special = a if a_special else b
        link_type = link_type_from_special(special) or LinkType.VETH
        return CanonicalLinkKey(type=link_type, a=select_non_special(a, b))
    return CanonicalLinkKey(type=LinkType.VETH, a=a, b=b)


def canonical_from_payload_edge(data: Mapping[str, Any]) -> CanonicalLinkKey | None:
    """Key for a canvas edge (``source``/``target`` plus ``*Endpoint``)."""
    source = data.get("source")
    target = data.get("target")
    if not source or not target:
        return None
    a = Endpoint(node=str(source), iface=str(data.get("sourceEndpoint") or ""))
    b = Endpoint(node=str(target), iface=str(data.get("targetEndpoint") or ""))
    return canonical_from_pair(a, b)


def canonical_from_link(end_a: Any, end_b: Any) -> CanonicalLinkKey:
    return canonical_from_pair(split_endpoint_canonical(end_a), split_endpoint_canonical(end_b))
