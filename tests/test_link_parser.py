"""Tests for endpoint parsing and link normalization."""
from __future__ import annotations

import pytest

from clabgraph.enums import LinkType
from clabgraph.services.link_parser import (
    CompileContext,
    Endpoint,
    build_container_name,
    extract_endpoint_mac,
    is_special_node_id,
    normalize_link_to_two_endpoints,
    normalize_single_type_to_special_id,
    resolve_actual_node,
    should_omit_endpoint,
    special_type_of,
    split_endpoint,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Spine-01:e1-1", Endpoint("Spine-01", "e1-1")),
        ("Spine-01", Endpoint("Spine-01", "")),
        ("macvlan:enp0s3", Endpoint("macvlan:enp0s3", "")),
        ("vxlan:192.0.2.1/100/4789/0", Endpoint("vxlan:192.0.2.1/100/4789/0", "")),
        ("vxlan-stitch:192.0.2.1/100/4789/", Endpoint("vxlan-stitch:192.0.2.1/100/4789/", "")),
        ("a:b:c", Endpoint("a:b:c", "")),
        ("host:eno1", Endpoint("host", "eno1")),
        ({"node": "r1", "interface": "eth1", "mac": "aa:bb"}, Endpoint("r1", "eth1", "aa:bb")),
        ({"node": "r1"}, Endpoint("r1", "")),
        (None, Endpoint("")),
        (42, Endpoint("")),
    ],
)
def test_split_endpoint(raw, expected):
    assert split_endpoint(raw) == expected


@pytest.mark.parametrize("node", ["r1", "leaf-01", "srl_a"])
@pytest.mark.parametrize("iface", ["eth1", "e1-1", "ethernet-1/1"])
def test_split_endpoint_round_trip(node, iface):
    """A plain node:iface string splits back into its parts."""
    assert split_endpoint(f"{node}:{iface}") == Endpoint(node, iface)


def test_extract_endpoint_mac():
    assert extract_endpoint_mac({"node": "r1", "mac": "02:00:00:00:00:01"}) == "02:00:00:00:00:01"
    assert extract_endpoint_mac("r1:eth1") == ""
    assert extract_endpoint_mac({"node": "r1"}) == ""


class TestSpecialIds:
    """Tests for normalize_single_type_to_special_id."""

    def test_host(self):
        ctx = CompileContext()
        assert normalize_single_type_to_special_id("host", {"host-interface": "eno1"}, ctx) == "host:eno1"

    def test_mgmt_net(self):
        ctx = CompileContext()
        assert normalize_single_type_to_special_id("mgmt-net", {"host-interface": "m1"}, ctx) == "mgmt-net:m1"

    def test_macvlan(self):
        ctx = CompileContext()
        assert normalize_single_type_to_special_id(LinkType.MACVLAN, {"host-interface": "enp0s3"}, ctx) == "macvlan:enp0s3"

    def test_vxlan_renders_all_segments(self):
        ctx = CompileContext()
        link = {"remote": "192.0.2.1", "vni": 100, "dst-port": 4789, "src-port": 0}
        assert normalize_single_type_to_special_id("vxlan", link, ctx) == "vxlan:192.0.2.1/100/4789/0"

    def test_vxlan_missing_fields_render_empty(self):
        ctx = CompileContext()
        assert normalize_single_type_to_special_id("vxlan", {"remote": "192.0.2.1"}, ctx) == "vxlan:192.0.2.1///"

    def test_vxlan_stitch_prefix(self):
        ctx = CompileContext()
        link = {"remote": "192.0.2.1", "vni": 7, "dst-port": 4789}
        assert normalize_single_type_to_special_id("vxlan-stitch", link, ctx) == "vxlan-stitch:192.0.2.1/7/4789/"

    def test_dummy_is_memoized_per_link_object(self):
        ctx = CompileContext()
        link = {"type": "dummy", "endpoint": "r1:eth9"}
        first = normalize_single_type_to_special_id("dummy", link, ctx)
        second = normalize_single_type_to_special_id("dummy", link, ctx)
        assert first == second == "dummy1"

    def test_dummy_ids_increase_per_object(self):
        ctx = CompileContext()
        ids = [
            normalize_single_type_to_special_id("dummy", {"type": "dummy", "endpoint": "r1:eth1"}, ctx),
            normalize_single_type_to_special_id("dummy", {"type": "dummy", "endpoint": "r1:eth1"}, ctx),
            normalize_single_type_to_special_id("dummy", {"type": "dummy", "endpoint": "r1:eth1"}, ctx),
        ]
        assert ids == ["dummy1", "dummy2", "dummy3"]

    def test_contexts_do_not_share_counters(self):
        link = {"type": "dummy", "endpoint": "r1:eth1"}
        assert normalize_single_type_to_special_id("dummy", link, CompileContext()) == "dummy1"
        assert normalize_single_type_to_special_id("dummy", link, CompileContext()) == "dummy1"

    def test_unknown_type(self):
        assert normalize_single_type_to_special_id("veth", {}, CompileContext()) == ""
        assert normalize_single_type_to_special_id(None, {}, CompileContext()) == ""


class TestNormalizeLink:
    """Tests for normalize_link_to_two_endpoints."""

    def test_endpoints_pass_through(self):
        result = normalize_link_to_two_endpoints({"endpoints": ["r1:eth1", "r2:eth1"]}, CompileContext())
        assert result is not None
        assert (result.end_a, result.end_b, result.type) == ("r1:eth1", "r2:eth1", None)

    def test_extended_veth_keeps_structured_endpoints(self):
        link = {"type": "veth", "endpoints": [{"node": "r1", "interface": "e1"}, {"node": "r2", "interface": "e2"}]}
        result = normalize_link_to_two_endpoints(link, CompileContext())
        assert result.end_a == {"node": "r1", "interface": "e1"}
        assert result.type == "veth"

    @pytest.mark.parametrize(
        "link",
        [
            {"endpoints": ["r1:eth1"]},
            {"endpoints": ["r1:eth1", ""]},
            {"endpoints": [None, "r2:eth1"]},
            {"endpoints": []},
            {"type": "host", "host-interface": "eno1"},
            {"type": "dummy"},
            {"type": "veth"},
            {},
            "r1:eth1",
            None,
        ],
    )
    def test_malformed_links_are_dropped(self, link):
        assert normalize_link_to_two_endpoints(link, CompileContext()) is None

    def test_host_link_gets_special_second_endpoint(self):
        link = {"type": "host", "endpoint": "r1:eth0", "host-interface": "eno1"}
        result = normalize_link_to_two_endpoints(link, CompileContext())
        assert (result.end_a, result.end_b, result.type) == ("r1:eth0", "host:eno1", "host")

    def test_dummy_link_reuses_id_for_same_object(self):
        ctx = CompileContext()
        link = {"type": "dummy", "endpoint": {"node": "r1", "interface": "eth5"}}
        assert normalize_link_to_two_endpoints(link, ctx).end_b == "dummy1"
        assert normalize_link_to_two_endpoints(link, ctx).end_b == "dummy1"


@pytest.mark.parametrize(
    "node,expected",
    [
        ("host", True),
        ("host:eno1", True),
        ("mgmt-net", True),
        ("mgmt-net:m1", True),
        ("macvlan:enp0s3", True),
        ("vxlan:1.2.3.4/1/4789/", True),
        ("vxlan-stitch:1.2.3.4/1/4789/", True),
        ("dummy1", True),
        ("r1", False),
        ("hostile", False),
        ("", False),
    ],
)
def test_is_special_node_id(node, expected):
    assert is_special_node_id(node) is expected


@pytest.mark.parametrize(
    "node_id,expected",
    [
        ("host:eno1", LinkType.HOST),
        ("mgmt-net:m1", LinkType.MGMT_NET),
        ("macvlan:enp0s3", LinkType.MACVLAN),
        ("vxlan:1.2.3.4/1/4789/", LinkType.VXLAN),
        ("vxlan-stitch:1.2.3.4/1/4789/", LinkType.VXLAN_STITCH),
        ("dummy3", LinkType.DUMMY),
        ("r1", None),
    ],
)
def test_special_type_of(node_id, expected):
    assert special_type_of(node_id) is expected


def test_resolve_actual_node():
    assert resolve_actual_node("host", "eno1") == "host:eno1"
    assert resolve_actual_node("mgmt-net", "m1") == "mgmt-net:m1"
    assert resolve_actual_node("macvlan:enp0s3", "") == "macvlan:enp0s3"
    assert resolve_actual_node("r1", "eth1") == "r1"


def test_should_omit_endpoint():
    assert should_omit_endpoint("host")
    assert should_omit_endpoint("macvlan:enp0s3")
    assert should_omit_endpoint("dummy1")
    assert not should_omit_endpoint("vxlan:1.2.3.4/1/4789/")
    assert not should_omit_endpoint("r1")


def test_build_container_name():
    assert build_container_name("r1", "r1", "clab-lab") == "clab-lab-r1"
    assert build_container_name("r1", "r1", "") == "r1"
    assert build_container_name("host", "host:eno1", "clab-lab") == "host:eno1"
