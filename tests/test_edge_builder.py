"""Tests for edge elements, validation and state classes."""
from __future__ import annotations

import logging
import math

import pytest

from clabgraph.schemas import InterfaceTreeNode
from clabgraph.services.edge_builder import (
    CLASS_LINK_DOWN,
    CLASS_LINK_UP,
    CLASS_STUB_LINK,
    ERR_INVALID_ENDPOINT,
    ERR_INVALID_VETH_ENDPOINTS,
    ERR_MISSING_DST_PORT,
    ERR_MISSING_HOST_INTERFACE,
    ERR_MISSING_REMOTE,
    ERR_MISSING_VNI,
    add_edge_elements,
    class_from_state,
    compute_edge_class,
    compute_edge_class_from_states,
    extract_edge_interface_stats,
    extract_ext_link_props,
    validate_extended_link,
)
from clabgraph.services.link_parser import CompileContext
from clabgraph.services.special_nodes import collect_special_nodes

from conftest import make_container, make_interface, make_labs


def _compile_edges(doc, labs=None, include_container_data=False):
    ctx = CompileContext()
    special_nodes, _ = collect_special_nodes(doc, ctx)
    elements = []
    result = add_edge_elements(
        doc,
        ctx=ctx,
        special_nodes=special_nodes,
        full_prefix="clab-lab",
        lab_name="lab",
        elements=elements,
        labs=labs,
        include_container_data=include_container_data,
    )
    return elements, result


def _doc(links, nodes=None):
    return {"name": "lab", "topology": {"nodes": nodes or {"r1": {}, "r2": {}}, "links": links}}


@pytest.mark.parametrize(
    "state,expected",
    [("up", CLASS_LINK_UP), ("UP", CLASS_LINK_UP), (" Down ", CLASS_LINK_DOWN), ("unknown", ""), (None, "")],
)
def test_class_from_state(state, expected):
    assert class_from_state({"state": state}) == expected


def test_class_from_state_accepts_models():
    assert class_from_state(InterfaceTreeNode(name="eth1", state="up")) == CLASS_LINK_UP
    assert class_from_state(None) == ""


class TestComputeEdgeClass:
    """Tests for compute_edge_class."""

    @pytest.mark.parametrize(
        "source,target,expected",
        [
            ("up", "up", CLASS_LINK_UP),
            ("up", "down", CLASS_LINK_DOWN),
            ("down", None, CLASS_LINK_DOWN),
            ("up", None, ""),
            (None, None, ""),
        ],
    )
    def test_regular_nodes(self, source, target, expected):
        assert compute_edge_class("r1", "r2", {"state": source}, {"state": target}) == expected

    def test_special_side_uses_other_side(self):
        assert compute_edge_class("r1", "host:eno1", {"state": "down"}, None) == CLASS_LINK_DOWN
        assert compute_edge_class("host:eno1", "r1", None, {"state": "up"}) == CLASS_LINK_UP

    def test_bridge_kind_counts_as_special(self):
        doc = _doc([], nodes={"br1": {"kind": "bridge"}, "r1": {}})
        assert compute_edge_class("r1", "br1", {"state": "up"}, {"state": "down"}, doc) == CLASS_LINK_UP

    def test_from_states(self):
        assert compute_edge_class_from_states(None, "r1", "r2", "up", "up") == CLASS_LINK_UP


class TestValidation:
    """Tests for validate_extended_link."""

    def test_short_format_is_not_validated(self):
        assert validate_extended_link({"endpoints": ["r1:eth1"]}) == []

    def test_veth_needs_structured_endpoints(self):
        assert validate_extended_link({"type": "veth", "endpoints": ["r1:eth1", "r2:eth1"]}) == [ERR_INVALID_VETH_ENDPOINTS]
        good = {"type": "veth", "endpoints": [{"node": "r1", "interface": "e1"}, {"node": "r2", "interface": "e1"}]}
        assert validate_extended_link(good) == []

    def test_host_needs_host_interface(self):
        assert validate_extended_link({"type": "host", "endpoint": "r1:eth1"}) == [ERR_MISSING_HOST_INTERFACE]

    def test_vxlan_required_fields(self):
        errors = validate_extended_link({"type": "vxlan", "endpoint": {"node": "r1", "interface": "e1"}})
        assert errors == [ERR_MISSING_REMOTE, ERR_MISSING_VNI, ERR_MISSING_DST_PORT]

    def test_invalid_endpoint(self):
        assert validate_extended_link({"type": "dummy", "endpoint": {"interface": "e1"}}) == [ERR_INVALID_ENDPOINT]


def test_extract_edge_interface_stats_keeps_finite_numbers():
    iface = {"stats": {"rxBps": 10, "txBps": math.nan, "rxBytes": "12", "txBytes": 5.5, "txPps": math.inf}}
    assert extract_edge_interface_stats(iface) == {"rxBps": 10, "txBytes": 5.5}


def test_extract_edge_interface_stats_none_when_empty():
    assert extract_edge_interface_stats({"stats": {"rxBps": "n/a"}}) is None
    assert extract_edge_interface_stats(None) is None


def test_extract_edge_interface_stats_from_model_extra():
    iface = InterfaceTreeNode(name="eth1", rxBps=100, txBps=200)
    assert extract_edge_interface_stats(iface) == {"rxBps": 100, "txBps": 200}


def test_extract_ext_link_props_defaults():
    props = extract_ext_link_props({"type": "host", "host-interface": "eno1"})
    assert props["extType"] == "host"
    assert props["extHostInterface"] == "eno1"
    assert props["extMtu"] == ""


class TestAddEdgeElements:
    """Tests for add_edge_elements."""

    def test_simple_veth(self):
        elements, result = _compile_edges(_doc([{"endpoints": ["r1:eth0", "r2:eth1"]}]))
        assert result.count == 1
        data = elements[0]["data"]
        assert data["id"] == "Clab-Link0"
        assert (data["source"], data["target"]) == ("r1", "r2")
        assert (data["sourceEndpoint"], data["targetEndpoint"]) == ("eth0", "eth1")
        assert data["extraData"]["clabSourceLongName"] == "clab-lab-r1"
        assert data["extraData"]["yamlFormat"] == "short"
        assert elements[0]["classes"] == ""

    def test_duplicate_declarations_collapse(self):
        links = [
            {"endpoints": ["r1:eth0", "r2:eth1"], "mtu": 1500},
            {"endpoints": ["r2:eth1", "r1:eth0"], "mtu": 9000},
            {"type": "veth", "endpoints": [{"node": "r1", "interface": "eth0"}, {"node": "r2", "interface": "eth1"}]},
        ]
        elements, result = _compile_edges(_doc(links))
        assert result.count == 1
        assert elements[0]["data"]["extraData"]["extMtu"] == 1500

    def test_host_link(self):
        doc = _doc([{"type": "host", "endpoint": "r1:eth0", "host-interface": "eno1"}], nodes={"r1": {}})
        elements, _ = _compile_edges(doc)
        data = elements[0]["data"]
        assert (data["source"], data["target"]) == ("r1", "host:eno1")
        assert data["targetEndpoint"] == ""
        assert data["extraData"]["yamlFormat"] == "extended"
        assert CLASS_STUB_LINK in elements[0]["classes"]

    def test_malformed_link_is_skipped(self, caplog):
        links = [{"endpoints": ["r1:eth0"]}, {"endpoints": ["r1:eth1", "r2:eth1"]}]
        with caplog.at_level(logging.WARNING):
            elements, result = _compile_edges(_doc(links))
        assert result.count == 1
        assert elements[0]["data"]["id"] == "Clab-Link0"
        assert "link #0" in caplog.text

    def test_validation_errors_attached(self):
        doc = _doc([{"type": "host", "endpoint": "r1:eth0", "host-interface": ""}], nodes={"r1": {}})
        elements, _ = _compile_edges(doc)
        assert elements[0]["data"]["extraData"]["extValidationErrors"] == [ERR_MISSING_HOST_INTERFACE]

    def test_view_mode_state(self):
        labs = make_labs(
            "lab",
            [
                make_container("clab-lab-r1", [make_interface("eth0", "up", mac="aa:aa", stats={"rxBps": 5})]),
                make_container("clab-lab-r2", [make_interface("eth1", "down")]),
            ],
        )
        elements, _ = _compile_edges(_doc([{"endpoints": ["r1:eth0", "r2:eth1"]}]), labs=labs, include_container_data=True)
        edge = elements[0]
        extra = edge["data"]["extraData"]
        assert edge["classes"] == CLASS_LINK_DOWN
        assert extra["clabSourceMacAddress"] == "aa:aa"
        assert extra["clabSourceInterfaceState"] == "up"
        assert extra["clabSourceStats"] == {"rxBps": 5}
        assert "clabTargetStats" not in extra
