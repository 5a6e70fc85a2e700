"""One-time migration of inline ``graph-*`` layout labels.

Older topologies keep layout in node labels (``graph-posX``, ``graph-icon``,
``graph-group``...). On compile, every node that carries such labels and has
no node annotation yet gets one built from them. The topology file itself is
never rewritten; the labels are only hidden from ``extraData.labels``.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping

from clabgraph.schemas import GeoCoordinates, NodeAnnotation, Position, TopologyAnnotations
from clabgraph.services.elements import parse_number
from clabgraph.services.node_builder import (
    LABEL_GEO_LAT,
    LABEL_GEO_LNG,
    LABEL_GROUP,
    LABEL_GROUP_LABEL_POS,
    LABEL_ICON,
    LABEL_LEVEL,
    LABEL_POS_X,
    LABEL_POS_Y,
    declared_nodes,
    node_labels,
    resolve_node_config,
)

logger = logging.getLogger(__name__)

LEGACY_LAYOUT_LABELS = (
    LABEL_POS_X,
    LABEL_POS_Y,
    LABEL_ICON,
    LABEL_GROUP,
    LABEL_LEVEL,
    LABEL_GROUP_LABEL_POS,
    LABEL_GEO_LAT,
    LABEL_GEO_LNG,
)


def _present(labels: Mapping[str, Any], key: str) -> bool:
    value = labels.get(key)
    return value is not None and str(value) != ""


def has_legacy_labels(labels: Mapping[str, Any]) -> bool:
    return any(_present(labels, key) for key in LEGACY_LAYOUT_LABELS)


def legacy_annotation_for(node_id: str, labels: Mapping[str, Any]) -> NodeAnnotation | None:
    """Node annotation carrying the layout found in ``labels``, or None.

    Positions and geo coordinates need both halves; an unparseable half
    becomes 0.
    """
    if not has_legacy_labels(labels):
        return None

    annotation = NodeAnnotation(id=node_id)
    if _present(labels, LABEL_POS_X) and _present(labels, LABEL_POS_Y):
        annotation.position = Position(x=parse_number(labels[LABEL_POS_X]), y=parse_number(labels[LABEL_POS_Y]))
    if _present(labels, LABEL_ICON):
        annotation.icon = str(labels[LABEL_ICON])
    if _present(labels, LABEL_GROUP):
        annotation.group = str(labels[LABEL_GROUP])
    if _present(labels, LABEL_LEVEL):
        annotation.level = str(labels[LABEL_LEVEL])
    if _present(labels, LABEL_GROUP_LABEL_POS):
        annotation.groupLabelPos = str(labels[LABEL_GROUP_LABEL_POS])
    if _present(labels, LABEL_GEO_LAT) and _present(labels, LABEL_GEO_LNG):
        annotation.geoCoordinates = GeoCoordinates(
            lat=parse_number(labels[LABEL_GEO_LAT]),
            lng=parse_number(labels[LABEL_GEO_LNG]),
        )
    return annotation


def migrate_legacy_labels(doc: Mapping[str, Any] | None, annotations: TopologyAnnotations) -> list[str]:
    """Add node annotations for nodes that only have legacy labels.

    Nodes that already have a node annotation are left alone.

    Returns:
        Ids of the nodes that were migrated (empty when nothing changed)
    """
    existing = {ann.id for ann in annotations.nodeAnnotations or []}
    migrated: list[NodeAnnotation] = []
    for name, node in declared_nodes(doc).items():
        node_id = str(name)
        if node_id in existing:
            continue
        annotation = legacy_annotation_for(node_id, node_labels(resolve_node_config(doc, node)))
        if annotation is not None:
            migrated.append(annotation)

    if migrated:
        annotations.nodeAnnotations = [*(annotations.nodeAnnotations or []), *migrated]
        logger.info(f"Migrated legacy layout labels for {len(migrated)} node(s)")
    return [ann.id for ann in migrated]
