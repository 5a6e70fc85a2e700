"""Graph element skeletons shared by the node and edge builders.

Every element the compiler emits has the shape the renderer consumes::

    {"group": "nodes" | "edges", "data": {...}, "position": {...},
     "removed": False, "selected": False, "selectable": True,
     "locked": False, "grabbed": False, "grabbable": True, "classes": ""}
"""
from __future__ import annotations

import math
from typing import Any, Mapping

GROUP_NODES = "nodes"
GROUP_EDGES = "edges"

NODE_WEIGHT = "30"
EDGE_WEIGHT = "3"
GROUP_WEIGHT = "1000"


def _flags() -> dict[str, bool]:
    return {
        "removed": False,
        "selected": False,
        "selectable": True,
        "locked": False,
        "grabbed": False,
        "grabbable": True,
    }


def node_element(data: dict[str, Any], position: Mapping[str, Any] | None = None, classes: str = "") -> dict[str, Any]:
    element: dict[str, Any] = {
        "group": GROUP_NODES,
        "data": data,
        "position": dict(position) if position else {"x": 0, "y": 0},
    }
    element.update(_flags())
    element["classes"] = classes
    return element


def edge_element(data: dict[str, Any], classes: str = "") -> dict[str, Any]:
    element: dict[str, Any] = {
        "group": GROUP_EDGES,
        "data": data,
        "position": {"x": 0, "y": 0},
    }
    element.update(_flags())
    element["classes"] = classes
    return element


def is_node(element: Mapping[str, Any]) -> bool:
    return element.get("group") == GROUP_NODES


def is_edge(element: Mapping[str, Any]) -> bool:
    return element.get("group") == GROUP_EDGES


def parse_number(value: Any, default: int | float = 0) -> int | float:
    """Parse a label value as a finite number.

    Integral values come back as ``int`` so ``"100"`` stays ``100`` when
    written to JSON. Anything unparseable returns ``default``.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    if number.is_integer():
        return int(number)
    return number


def position_of(x: Any, y: Any) -> dict[str, int | float]:
    return {"x": parse_number(x), "y": parse_number(y)}


def add_class(classes: str, token: str) -> str:
    """Append ``token`` to a whitespace-separated class string once."""
    tokens = classes.split()
    if token and token not in tokens:
        tokens.append(token)
    return " ".join(tokens)


def remove_class(classes: str, token: str) -> str:
    return " ".join(t for t in classes.split() if t != token)
