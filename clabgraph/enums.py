"""Closed variants for link types and node roles."""
from __future__ import annotations

from enum import Enum


class LinkType(str, Enum):
    """Link types a containerlab topology can declare.

    ``VETH`` is the symmetric type; everything else anchors one side of the
    link to a synthesized or bridge node.
    """

    VETH = "veth"
    HOST = "host"
    MGMT_NET = "mgmt-net"
    MACVLAN = "macvlan"
    VXLAN = "vxlan"
    VXLAN_STITCH = "vxlan-stitch"
    DUMMY = "dummy"
    BRIDGE = "bridge"
    OVS_BRIDGE = "ovs-bridge"

    @classmethod
    def parse(cls, value: object) -> "LinkType | None":
        """Return the member for ``value`` or None when it is not a known type."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def is_single_endpoint(self) -> bool:
        return self in SINGLE_ENDPOINT_TYPES

    @property
    def is_bridge(self) -> bool:
        return self in (LinkType.BRIDGE, LinkType.OVS_BRIDGE)


SINGLE_ENDPOINT_TYPES = frozenset(
    {
        LinkType.HOST,
        LinkType.MGMT_NET,
        LinkType.MACVLAN,
        LinkType.DUMMY,
        LinkType.VXLAN,
        LinkType.VXLAN_STITCH,
    }
)


class NodeRole(str, Enum):
    """Value of ``topoViewerRole`` on emitted elements."""

    ROUTER = "router"
    CLOUD = "cloud"
    BRIDGE = "bridge"
    GROUP = "group"
    LINK = "link"
    FREE_TEXT = "freeText"
    FREE_SHAPE = "freeShape"


class CompileMode(str, Enum):
    """Editor compiles ignore live state; view compiles overlay it."""

    EDITOR = "editor"
    VIEW = "view"
