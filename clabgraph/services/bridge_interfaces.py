"""Resolve duplicate interface names on bridges.

Links declared independently against the same bridge often reuse the same
default interface name, and aliasing makes that easy to do by accident. The
fixer groups edges per base bridge (aliases resolved through their
``extYamlNodeId``), keeps the first edge on each name and renames the rest
to the lowest unused ``eth<N>``.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from clabgraph.services.elements import is_edge, is_node
from clabgraph.services.node_builder import is_bridge_kind

logger = logging.getLogger(__name__)

SIDES = (("source", "sourceEndpoint"), ("target", "targetEndpoint"))


def build_node_id_override_map(payload: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """``alias id -> base id`` from bridge nodes carrying ``extYamlNodeId``."""
    overrides: dict[str, str] = {}
    for el in payload:
        if not is_node(el):
            continue
        data = el.get("data") or {}
        extra = data.get("extraData") or {}
        node_id = data.get("id")
        base_id = extra.get("extYamlNodeId")
        if node_id and isinstance(base_id, str) and base_id.strip() and base_id != node_id:
            overrides[node_id] = base_id.strip()
    return overrides


def apply_id_override_to_edge_data(data: Mapping[str, Any], overrides: Mapping[str, str]) -> dict[str, Any]:
    """Copy of edge ``data`` with alias ids replaced by their base ids."""
    updated = dict(data)
    for side, _ in SIDES:
        node_id = updated.get(side)
        if node_id in overrides:
            updated[side] = overrides[node_id]
    return updated


def _bridge_base_ids(payload: Iterable[Mapping[str, Any]], overrides: Mapping[str, str]) -> set[str]:
    bases: set[str] = set()
    for el in payload:
        if not is_node(el):
            continue
        data = el.get("data") or {}
        extra = data.get("extraData") or {}
        if is_bridge_kind(extra.get("kind")) and data.get("id"):
            bases.add(overrides.get(data["id"], data["id"]))
    return bases


def _next_free_name(used: set[str]) -> str:
    index = 1
    while f"eth{index}" in used:
        index += 1
    return f"eth{index}"


def auto_fix_duplicate_bridge_interfaces(payload: list[dict[str, Any]]) -> int:
    """Rename colliding bridge interfaces in place.

    The first edge using a name on a bridge keeps it. Every later edge using
    the same name gets the lowest ``eth<N>`` not used anywhere on that bridge
    or its aliases. Running the fixer on its own output changes nothing.

    Returns:
        Number of interfaces renamed
    """
    overrides = build_node_id_override_map(payload)
    bridges = _bridge_base_ids(payload, overrides)
    if not bridges:
        return 0

    # (edge data, endpoint key) per bridge, in declaration order
    usages: dict[str, list[tuple[dict[str, Any], str]]] = {base: [] for base in bridges}
    for el in payload:
        if not is_edge(el):
            continue
        data = el.get("data") or {}
        for side, endpoint_key in SIDES:
            node_id = data.get(side)
            base = overrides.get(node_id, node_id)
            if base in usages and data.get(endpoint_key):
                usages[base].append((data, endpoint_key))

    renamed = 0
    for base, entries in usages.items():
        used = {str(data[key]) for data, key in entries}
        seen: set[str] = set()
        for data, key in entries:
            name = str(data[key])
            if name not in seen:
                seen.add(name)
                continue
            new_name = _next_free_name(used)
            used.add(new_name)
            seen.add(new_name)
            data[key] = new_name
            renamed += 1
            logger.warning(f"Bridge {base}: interface {name} already in use, renamed to {new_name}")
    return renamed
