"""Shared pytest fixtures for compiler tests."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from clabgraph.schemas import LabTreeNode, parse_labs_snapshot
from clabgraph.storage import AnnotationsManager


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def manager(clock: FakeClock) -> AnnotationsManager:
    """Annotations manager with a 2s TTL on the fake clock."""
    return AnnotationsManager(ttl=2.0, clock=clock)


@pytest.fixture()
def write_topology(tmp_path: Path) -> Callable[..., Path]:
    """Write topology YAML under tmp_path and return its path."""

    def _write(content: str, name: str = "lab.clab.yml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


def make_interface(name: str, state: str = "up", mac: str = "", **extra: Any) -> dict[str, Any]:
    return {"name": name, "state": state, "mac": mac, **extra}


def make_container(name: str, interfaces: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    return {"name": name, "state": "running", "interfaces": interfaces or [], **extra}


def make_labs(lab_name: str, containers: list[dict[str, Any]]) -> dict[str, LabTreeNode]:
    """Snapshot with one lab holding ``containers``."""
    return parse_labs_snapshot({f"/labs/{lab_name}.clab.yml": {"name": lab_name, "containers": containers}})


@pytest.fixture()
def labs_factory() -> Callable[..., dict[str, LabTreeNode]]:
    return make_labs


SIMPLE_VETH = """\
name: lab
topology:
  nodes:
    r1:
      kind: nokia_srlinux
    r2:
      kind: nokia_srlinux
  links:
    - endpoints: ["r1:eth0", "r2:eth1"]
"""

HOST_LINK = """\
name: lab
topology:
  nodes:
    r1:
      kind: linux
  links:
    - type: host
      endpoint: "r1:eth0"
      host-interface: eno1
"""

BRIDGE_TOPOLOGY = """\
name: lab
topology:
  nodes:
    br1:
      kind: bridge
    r1:
      kind: linux
    r2:
      kind: linux
  links:
    - endpoints: ["r1:eth1", "br1:eth1"]
    - endpoints: ["r2:eth1", "br1:eth1"]
"""

LEGACY_LABELS = """\
name: lab
topology:
  nodes:
    r1:
      kind: linux
      labels:
        graph-icon: switch
        graph-posX: "120"
        graph-posY: "80"
        owner: netops
"""
