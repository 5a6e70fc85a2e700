"""Lookups over the live inspection snapshot."""
from __future__ import annotations

from typing import Mapping

from clabgraph.schemas import ContainerTreeNode, InterfaceTreeNode, LabTreeNode


def _labs_matching(
    labs: Mapping[str, LabTreeNode] | None,
    lab_name: str | None,
) -> list[LabTreeNode]:
    if not labs:
        return []
    if not lab_name:
        return list(labs.values())
    return [lab for lab in labs.values() if lab is not None and lab.name == lab_name]


def find_container_node(
    labs: Mapping[str, LabTreeNode] | None,
    container_name: str,
    lab_name: str | None = None,
) -> ContainerTreeNode | None:
    """Find a container by long name, short name or label.

    Args:
        labs: Snapshot keyed by lab identifier
        container_name: Name to match
        lab_name: Restrict the search to the lab with this name

    Returns:
        The first matching container, or None
    """
    if not container_name:
        return None
    for lab in _labs_matching(labs, lab_name):
        for container in lab.containers:
            if container_name in (container.name, container.name_short, container.label):
                return container
    return None


def find_interface_node(
    labs: Mapping[str, LabTreeNode] | None,
    container_name: str,
    interface_name: str,
    lab_name: str | None = None,
) -> InterfaceTreeNode | None:
    """Find an interface of a container by name, alias or label."""
    if not interface_name:
        return None
    container = find_container_node(labs, container_name, lab_name)
    if container is None:
        return None
    for iface in container.interfaces:
        if interface_name in (iface.name, iface.alias, iface.display_label()):
            return iface
    return None
