"""Tests for writing an edited payload back to the topology document."""
from __future__ import annotations

import yaml

from clabgraph.services.elements import edge_element, node_element
from clabgraph.services.topology_writer import (
    apply_payload_to_topology,
    build_link_index,
    build_nodes,
    dump_topology_yaml,
    link_from_edge,
)

DOC = {
    "name": "lab",
    "mgmt": {"network": "custom"},
    "topology": {
        "kinds": {"linux": {"image": "alpine"}},
        "nodes": {
            "r1": {"kind": "linux", "labels": {"graph-posX": "10", "owner": "netops"}, "env": {"A": "1"}},
            "r2": {"kind": "linux", "labels": {"graph-icon": "pe"}},
            "br1": {"kind": "bridge"},
        },
        "links": [
            {"endpoints": ["r1:eth1", "r2:eth1"], "mtu": 9000},
            {"type": "host", "endpoint": "r1:eth0", "host-interface": "eno1"},
        ],
    },
}


def _node(node_id, role="router", **extra):
    return node_element({"id": node_id, "topoViewerRole": role, "extraData": extra})


def _edge(source, source_ep, target, target_ep, **extra):
    return edge_element(
        {
            "id": f"{source}-{target}",
            "source": source,
            "target": target,
            "sourceEndpoint": source_ep,
            "targetEndpoint": target_ep,
            "extraData": extra,
        }
    )


def test_build_link_index():
    index = build_link_index(DOC)
    assert set(index) == {"veth|r1:eth1|r2:eth1", "host|r1:eth0"}


class TestBuildNodes:
    """Tests for build_nodes."""

    def test_keeps_bodies_and_strips_legacy_labels(self):
        nodes = build_nodes(DOC, [_node("r1"), _node("r2"), _node("br1", "bridge", kind="bridge")])
        assert nodes["r1"] == {"kind": "linux", "labels": {"owner": "netops"}, "env": {"A": "1"}}
        assert nodes["r2"] == {"kind": "linux"}
        assert nodes["br1"] == {"kind": "bridge"}

    def test_does_not_mutate_source(self):
        build_nodes(DOC, [_node("r1")])
        assert "graph-posX" in DOC["topology"]["nodes"]["r1"]["labels"]

    def test_new_and_removed_nodes(self):
        payload = [_node("r1"), _node("r9", kind="nokia_srlinux", image="srlinux", type="")]
        nodes = build_nodes(DOC, payload)
        assert list(nodes) == ["r1", "r9"]
        assert nodes["r9"] == {"kind": "nokia_srlinux", "image": "srlinux"}

    def test_aliases_and_clouds_are_not_nodes(self):
        payload = [
            _node("br1", "bridge", kind="bridge"),
            _node("a1", "bridge", kind="bridge", extYamlNodeId="br1"),
            _node("host:eno1", "cloud", kind="host"),
            _node("g:1", "group"),
        ]
        assert list(build_nodes(DOC, payload)) == ["br1"]


class TestLinkFromEdge:
    """Tests for link_from_edge."""

    def test_short_veth(self):
        data = _edge("r1", "eth2", "r2", "eth2")["data"]
        assert link_from_edge(data) == {"endpoints": ["r1:eth2", "r2:eth2"]}

    def test_extended_veth(self):
        data = _edge("r1", "eth2", "r2", "eth2", yamlFormat="extended", extSourceMac="02:00", extMtu=1500)["data"]
        assert link_from_edge(data) == {
            "type": "veth",
            "endpoints": [{"node": "r1", "interface": "eth2", "mac": "02:00"}, {"node": "r2", "interface": "eth2"}],
            "mtu": 1500,
        }

    def test_host(self):
        data = _edge("host:eno2", "", "r1", "eth3")["data"]
        assert link_from_edge(data) == {"type": "host", "endpoint": {"node": "r1", "interface": "eth3"}, "host-interface": "eno2"}

    def test_macvlan_mode(self):
        data = _edge("r1", "eth3", "macvlan:enp0s3", "", extMode="bridge")["data"]
        link = link_from_edge(data)
        assert link["type"] == "macvlan"
        assert link["host-interface"] == "enp0s3"
        assert link["mode"] == "bridge"

    def test_vxlan_from_id(self):
        data = _edge("r1", "eth4", "vxlan:192.0.2.1/100/4789/", "")["data"]
        link = link_from_edge(data)
        assert link == {
            "type": "vxlan",
            "endpoint": {"node": "r1", "interface": "eth4"},
            "remote": "192.0.2.1",
            "vni": "100",
            "dst-port": "4789",
        }

    def test_vxlan_prefers_extra_data(self):
        data = _edge("r1", "eth4", "vxlan:192.0.2.1/100/4789/", "", extVni=100, extDstPort=4789, extRemote="192.0.2.1")["data"]
        link = link_from_edge(data)
        assert (link["vni"], link["dst-port"]) == (100, 4789)

    def test_dummy(self):
        data = _edge("r1", "eth5", "dummy1", "")["data"]
        assert link_from_edge(data) == {"type": "dummy", "endpoint": {"node": "r1", "interface": "eth5"}}


class TestApplyPayload:
    """Tests for apply_payload_to_topology."""

    def _payload(self):
        return [
            _node("r1"),
            _node("r2"),
            _node("br1", "bridge", kind="bridge"),
            _node("a1", "bridge", kind="bridge", extYamlNodeId="br1"),
            _node("host:eno1", "cloud", kind="host"),
            _edge("r2", "eth1", "r1", "eth1"),
            _edge("r1", "eth0", "host:eno1", ""),
            _edge("r2", "eth2", "a1", "eth5"),
        ]

    def test_round_trip_keeps_original_links(self):
        result = apply_payload_to_topology(DOC, self._payload())
        links = result["topology"]["links"]
        assert links[0] == {"endpoints": ["r1:eth1", "r2:eth1"], "mtu": 9000}
        assert links[1] == {"type": "host", "endpoint": "r1:eth0", "host-interface": "eno1"}

    def test_alias_edges_map_to_base(self):
        links = apply_payload_to_topology(DOC, self._payload())["topology"]["links"]
        assert links[2] == {"endpoints": ["r2:eth2", "br1:eth5"]}

    def test_other_keys_preserved(self):
        result = apply_payload_to_topology(DOC, self._payload())
        assert result["mgmt"] == {"network": "custom"}
        assert result["topology"]["kinds"] == {"linux": {"image": "alpine"}}
        assert result["name"] == "lab"

    def test_duplicate_edges_collapse(self):
        payload = [_node("r1"), _node("r2"), _edge("r1", "eth1", "r2", "eth1"), _edge("r2", "eth1", "r1", "eth1")]
        assert len(apply_payload_to_topology(DOC, payload)["topology"]["links"]) == 1

    def test_edges_to_removed_nodes_dropped(self):
        payload = [_node("r1"), _edge("r1", "eth1", "r2", "eth1")]
        result = apply_payload_to_topology(DOC, payload)
        assert list(result["topology"]["nodes"]) == ["r1"]
        assert result["topology"]["links"] == []

    def test_no_links_key_added_when_absent(self):
        doc = {"name": "lab", "topology": {"nodes": {"r1": {}}}}
        assert "links" not in apply_payload_to_topology(doc, [_node("r1")])["topology"]


def test_dump_topology_yaml_preserves_order():
    text = dump_topology_yaml({"name": "lab", "topology": {"nodes": {"z": {}, "a": {}}}})
    assert text.index("name") < text.index("topology")
    assert text.index("z:") < text.index("a:")
    assert yaml.safe_load(text)["topology"]["nodes"] == {"z": {}, "a": {}}
