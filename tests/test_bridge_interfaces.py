"""Tests for bridge interface collision fix-up."""
from __future__ import annotations

import copy
import logging

from clabgraph.services.bridge_interfaces import (
    apply_id_override_to_edge_data,
    auto_fix_duplicate_bridge_interfaces,
    build_node_id_override_map,
)
from clabgraph.services.elements import edge_element, node_element


def _node(node_id, kind="linux", base=None):
    extra = {"kind": kind}
    if base:
        extra["extYamlNodeId"] = base
    return node_element({"id": node_id, "extraData": extra})


def _edge(edge_id, source, source_ep, target, target_ep):
    return edge_element(
        {"id": edge_id, "source": source, "target": target, "sourceEndpoint": source_ep, "targetEndpoint": target_ep}
    )


def _bridge_ports(payload, bridge_ids=("br1", "a1")):
    ports = []
    for el in payload:
        if el["group"] != "edges":
            continue
        data = el["data"]
        if data["source"] in bridge_ids:
            ports.append(data["sourceEndpoint"])
        if data["target"] in bridge_ids:
            ports.append(data["targetEndpoint"])
    return ports


def test_build_node_id_override_map():
    payload = [_node("br1", "bridge"), _node("a1", "bridge", base="br1"), _node("r1"), _node("self", "bridge", base="self")]
    assert build_node_id_override_map(payload) == {"a1": "br1"}


def test_apply_id_override_returns_copy():
    data = {"source": "a1", "target": "r1"}
    updated = apply_id_override_to_edge_data(data, {"a1": "br1"})
    assert updated == {"source": "br1", "target": "r1"}
    assert data["source"] == "a1"


class TestAutoFix:
    """Tests for auto_fix_duplicate_bridge_interfaces."""

    def test_alias_and_base_collision(self, caplog):
        payload = [
            _node("br1", "bridge"),
            _node("a1", "bridge", base="br1"),
            _node("r1"),
            _node("r2"),
            _edge("e1", "r1", "eth1", "br1", "eth1"),
            _edge("e2", "r2", "eth1", "a1", "eth1"),
        ]
        with caplog.at_level(logging.WARNING):
            renamed = auto_fix_duplicate_bridge_interfaces(payload)
        assert renamed == 1
        assert payload[4]["data"]["targetEndpoint"] == "eth1"
        assert payload[5]["data"]["targetEndpoint"] == "eth2"
        assert "renamed to eth2" in caplog.text

    def test_lowest_free_name_skips_used(self):
        payload = [
            _node("br1", "bridge"),
            _node("r1"),
            _edge("e1", "r1", "eth1", "br1", "eth1"),
            _edge("e2", "r1", "eth2", "br1", "eth2"),
            _edge("e3", "r1", "eth3", "br1", "eth1"),
            _edge("e4", "br1", "eth1", "r1", "eth4"),
        ]
        auto_fix_duplicate_bridge_interfaces(payload)
        assert _bridge_ports(payload) == ["eth1", "eth2", "eth3", "eth4"]

    def test_no_duplicates_after_fix(self):
        payload = [_node("br1", "bridge"), _node("a1", "bridge", base="br1")]
        payload += [_edge(f"e{i}", f"r{i}", "eth1", "br1" if i % 2 else "a1", "eth1") for i in range(6)]
        auto_fix_duplicate_bridge_interfaces(payload)
        ports = _bridge_ports(payload)
        assert len(ports) == len(set(ports)) == 6

    def test_idempotent(self):
        payload = [
            _node("br1", "bridge"),
            _node("a1", "bridge", base="br1"),
            _edge("e1", "r1", "eth1", "br1", "eth1"),
            _edge("e2", "r2", "eth1", "a1", "eth1"),
            _edge("e3", "r3", "eth1", "a1", "eth1"),
        ]
        auto_fix_duplicate_bridge_interfaces(payload)
        once = copy.deepcopy(payload)
        assert auto_fix_duplicate_bridge_interfaces(payload) == 0
        assert payload == once

    def test_non_bridge_nodes_untouched(self):
        payload = [
            _node("r1"),
            _edge("e1", "r1", "eth1", "r2", "eth1"),
            _edge("e2", "r1", "eth1", "r3", "eth1"),
        ]
        assert auto_fix_duplicate_bridge_interfaces(payload) == 0
        assert payload[2]["data"]["sourceEndpoint"] == "eth1"
