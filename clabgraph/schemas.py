from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Annotation side-file ---------------------------------------------------
#
# Keys match the JSON written next to the topology file. Unknown keys are
# kept (extra="allow") so a save never drops fields the compiler does not
# interpret.


class Position(BaseModel):
    """Canvas coordinates."""

    # Integers must stay integers on re-serialization.
    x: int | float = 0
    y: int | float = 0


class GeoCoordinates(BaseModel):
    lat: int | float = 0
    lng: int | float = 0


class NodeAnnotation(BaseModel):
    """Placement and styling for one node, or one bridge alias."""

    model_config = ConfigDict(extra="allow")

    id: str
    label: str | None = None
    icon: str | None = None
    iconColor: str | None = None
    iconCornerRadius: int | float | None = None
    position: Position | None = None
    group: str | int | None = None
    level: str | int | None = None
    groupLabelPos: str | None = None
    geoCoordinates: GeoCoordinates | None = None
    # Alias back-references: this entry is a second on-canvas placement of
    # bridge `yamlNodeId`, carrying the link on `yamlInterface`.
    yamlNodeId: str | None = None
    yamlInterface: str | None = None


class CloudNodeAnnotation(BaseModel):
    """Placement for a synthesized special node (host, mgmt-net, vxlan...)."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str | None = None
    label: str | None = None
    position: Position | None = None
    group: str | int | None = None
    level: str | int | None = None


class FreeTextAnnotation(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    text: str | None = None
    position: Position | None = None


class FreeShapeAnnotation(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    shapeType: str | None = None
    position: Position | None = None


class GroupStyleAnnotation(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str


class TopologyAnnotations(BaseModel):
    """Contents of ``<topology>.annotations.json``."""

    model_config = ConfigDict(extra="allow")

    freeTextAnnotations: list[FreeTextAnnotation] | None = None
    freeShapeAnnotations: list[FreeShapeAnnotation] | None = None
    groupStyleAnnotations: list[GroupStyleAnnotation] | None = None
    cloudNodeAnnotations: list[CloudNodeAnnotation] | None = None
    nodeAnnotations: list[NodeAnnotation] | None = None
    viewerSettings: dict[str, Any] | None = None

    @classmethod
    def empty(cls) -> "TopologyAnnotations":
        return cls(
            freeTextAnnotations=[],
            freeShapeAnnotations=[],
            groupStyleAnnotations=[],
            cloudNodeAnnotations=[],
            nodeAnnotations=[],
        )

    def is_empty(self) -> bool:
        """True when every list is empty or absent and there are no viewer settings."""
        lists = (
            self.freeTextAnnotations,
            self.freeShapeAnnotations,
            self.groupStyleAnnotations,
            self.cloudNodeAnnotations,
            self.nodeAnnotations,
        )
        return all(not items for items in lists) and self.viewerSettings is None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# --- Live inspection snapshot ----------------------------------------------


class InterfaceTreeNode(BaseModel):
    """One interface of a running container."""

    model_config = ConfigDict(extra="allow")

    name: str
    label: str = ""  # Display name; falls back to `name`
    alias: str = ""
    mac: str = ""
    mtu: int | None = None
    ifIndex: int | None = None
    state: str = ""
    type: str = ""
    stats: dict[str, Any] | None = None

    def display_label(self) -> str:
        return self.label or self.name


class ContainerTreeNode(BaseModel):
    """One running container of a lab."""

    model_config = ConfigDict(extra="allow")

    name: str  # Long name, e.g. clab-lab1-node1
    name_short: str = ""
    label: str = ""
    cID: str = ""
    state: str = ""
    kind: str = ""
    image: str = ""
    interfaces: list[InterfaceTreeNode] = Field(default_factory=list)
    IPv4Address: str = ""
    IPv6Address: str = ""


class LabTreeNode(BaseModel):
    """One deployed lab as reported by inspection."""

    model_config = ConfigDict(extra="allow")

    name: str
    containers: list[ContainerTreeNode] = Field(default_factory=list)


def parse_labs_snapshot(data: dict[str, Any] | None) -> dict[str, LabTreeNode]:
    """Validate a raw ``{lab_key: lab}`` mapping into typed tree nodes."""
    return {str(key): LabTreeNode.model_validate(value) for key, value in (data or {}).items()}
