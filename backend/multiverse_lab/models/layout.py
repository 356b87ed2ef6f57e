# multiverse_lab/models/layout.py
"""
Core layout model shared by the validator, generator and fusion engine.

Everything here is a plain value: nothing is persisted and no helper mutates
its input. Wire-format conversion (``to_dict``/``from_dict``) lives next to
each type so the API layer and the agent adapter agree on one shape.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import networkx as nx

from multiverse_lab.errors import NotFoundError


class ZoneCategory(str, Enum):
    COMPUTE = "compute"
    WORKSPACE = "workspace"
    MEETING = "meeting"
    STORAGE = "storage"
    UTILITY = "utility"
    ENTRANCE = "entrance"
    # Only produced by fusion for zones the user must resolve by hand
    UNRESOLVED = "unresolved"


class DecisionPointKind(str, Enum):
    ZONE = "zone"
    EQUIPMENT = "equipment"
    STRUCTURE = "structure"


@dataclass
class ZoneData:
    id: str
    name: str
    category: ZoneCategory
    area: float
    equipment: List[str] = field(default_factory=list)
    adjacent: List[str] = field(default_factory=list)
    needs_resolution: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "area": self.area,
            "equipment": list(self.equipment),
            "adjacent": list(self.adjacent),
            "needsResolution": self.needs_resolution,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ZoneData":
        return ZoneData(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            category=ZoneCategory(data["category"]),
            area=float(data["area"]),
            equipment=[str(e) for e in data.get("equipment") or []],
            adjacent=[str(a) for a in data.get("adjacent") or []],
            needs_resolution=bool(data.get("needsResolution", False)),
        )


@dataclass
class LayoutData:
    id: str
    name: str
    total_area: float  # declared area budget
    zones: List[ZoneData] = field(default_factory=list)
    unit: str = "m"
    description: str = ""
    provenance: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "totalArea": self.total_area,
            "unit": self.unit,
            "description": self.description,
            "zones": [z.to_dict() for z in self.zones],
            "provenance": self.provenance,
            "metadata": dict(self.metadata),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "LayoutData":
        return LayoutData(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            total_area=float(data["totalArea"]),
            zones=[ZoneData.from_dict(z) for z in data.get("zones") or []],
            unit=data.get("unit") or "m",
            description=data.get("description") or "",
            provenance=data.get("provenance"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class DecisionPoint:
    """What is allowed to vary between the universes of one generation round."""
    description: str
    kind: DecisionPointKind = DecisionPointKind.STRUCTURE
    zone_ids: Tuple[str, ...] = ()

    def implicated(self, layout: LayoutData) -> List[str]:
        """Zone ids of ``layout`` the decision point may touch (all of them when none are named)."""
        if not self.zone_ids:
            return [z.id for z in layout.zones]
        return list(self.zone_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {"description": self.description, "kind": self.kind.value, "zoneIds": list(self.zone_ids)}


@dataclass
class Universe:
    """One candidate resolution of a decision point."""
    index: int
    label: str
    layout: LayoutData
    valid: bool = True
    violations: List[Any] = field(default_factory=list)  # List[Violation]
    fitness: Optional[float] = None
    description: str = ""
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)
    estimated_cost: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label,
            "layout": self.layout.to_dict(),
            "valid": self.valid,
            "violations": [v.to_dict() for v in self.violations],
            "fitness": self.fitness,
            "description": self.description,
            "pros": list(self.pros),
            "cons": list(self.cons),
            "estimatedCost": self.estimated_cost,
        }


# === Structural helpers ===

def total_area(layout: LayoutData) -> float:
    return layout.total_area


def used_area(layout: LayoutData) -> float:
    return sum(z.area for z in layout.zones)


def zone_by_id(layout: LayoutData, zone_id: str) -> ZoneData:
    for zone in layout.zones:
        if zone.id == zone_id:
            return zone
    raise NotFoundError(f"Zone '{zone_id}' not found in layout '{layout.id}'")


def adjacency_graph(layout: LayoutData) -> nx.Graph:
    """Undirected graph of zones; an edge exists if either end declares it."""
    graph = nx.Graph()
    for zone in layout.zones:
        graph.add_node(zone.id, category=zone.category)
    for zone in layout.zones:
        for other in zone.adjacent:
            if other in graph and other != zone.id:
                graph.add_edge(zone.id, other)
    return graph


def adjacent_zones(layout: LayoutData, zone_id: str) -> List[ZoneData]:
    zone_by_id(layout, zone_id)
    neighbours = set(adjacency_graph(layout).neighbors(zone_id))
    # keep layout order for stable output
    return [z for z in layout.zones if z.id in neighbours]


def same_zone_set(a: LayoutData, b: LayoutData) -> bool:
    return {z.id for z in a.zones} == {z.id for z in b.zones}


def layout_signature(layout: LayoutData) -> Tuple:
    """Zone contents with identifiers stripped; equal signatures mean duplicate resolutions."""
    entries = Counter(
        (z.category.value, round(z.area, 3), tuple(sorted(set(z.equipment))))
        for z in layout.zones
    )
    return tuple(sorted(entries.items()))


def copy_zone(zone: ZoneData, **changes) -> ZoneData:
    base = replace(zone, equipment=list(zone.equipment), adjacent=list(zone.adjacent))
    return replace(base, **changes) if changes else base


def copy_layout(layout: LayoutData, zones: Optional[Iterable[ZoneData]] = None, **changes) -> LayoutData:
    new_zones = [copy_zone(z) for z in (layout.zones if zones is None else zones)]
    base = replace(layout, zones=new_zones, metadata=dict(layout.metadata))
    return replace(base, **changes) if changes else base
