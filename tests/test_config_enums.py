"""Tests for settings and enums."""
from __future__ import annotations

import pytest

from clabgraph.config import Settings
from clabgraph.enums import CompileMode, LinkType


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("CLABGRAPH_DEFAULT_PREFIX", raising=False)
    current = Settings()
    assert current.default_prefix == "clab"
    assert current.annotations_suffix == ".annotations.json"
    assert current.view_cache_enabled is True


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("CLABGRAPH_DEFAULT_PREFIX", "lab")
    monkeypatch.setenv("CLABGRAPH_ANNOTATIONS_CACHE_TTL", "0.5")
    monkeypatch.setenv("CLABGRAPH_VIEW_CACHE_ENABLED", "false")
    current = Settings()
    assert current.default_prefix == "lab"
    assert current.annotations_cache_ttl == 0.5
    assert current.view_cache_enabled is False


@pytest.mark.parametrize(
    "value,expected",
    [
        ("veth", LinkType.VETH),
        (" Host ", LinkType.HOST),
        ("mgmt-net", LinkType.MGMT_NET),
        ("vxlan-stitch", LinkType.VXLAN_STITCH),
        (LinkType.DUMMY, LinkType.DUMMY),
        ("unknown", None),
        (None, None),
        (3, None),
    ],
)
def test_link_type_parse(value, expected):
    assert LinkType.parse(value) is expected


def test_link_type_properties():
    assert LinkType.HOST.is_single_endpoint
    assert LinkType.DUMMY.is_single_endpoint
    assert not LinkType.VETH.is_single_endpoint
    assert LinkType.OVS_BRIDGE.is_bridge
    assert not LinkType.MACVLAN.is_bridge


def test_compile_mode_values():
    assert CompileMode("view") is CompileMode.VIEW
    assert [mode.value for mode in CompileMode] == ["editor", "view"]
