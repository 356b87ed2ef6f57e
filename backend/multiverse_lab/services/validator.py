# multiverse_lab/services/validator.py
import math
from dataclasses import dataclass, field
from collections import Counter
from typing import Any, Container, Dict, Iterable, List, Optional, Sequence, Tuple

from multiverse_lab.errors import ValidationError
from multiverse_lab.models.layout import LayoutData, ZoneCategory, adjacency_graph, used_area


@dataclass(frozen=True)
class Violation:
    constraint: str
    zone_ids: Tuple[str, ...]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"constraint": self.constraint, "zoneIds": list(self.zone_ids), "reason": self.reason}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Violation":
        return Violation(str(data["constraint"]), tuple(data.get("zoneIds") or ()), str(data.get("reason", "")))


@dataclass
class ValidationResult:
    valid: bool
    violations: List[Violation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "violations": [v.to_dict() for v in self.violations]}


# === Caller-supplied constraints ===

@dataclass(frozen=True)
class AreaCeiling:
    name: str
    max_area: float

    def check(self, layout: LayoutData) -> List[Violation]:
        used = used_area(layout)
        if used > self.max_area:
            return [Violation(self.name, (), f"Zones occupy {used:.1f} {layout.unit}², above the ceiling of {self.max_area:.1f}.")]
        return []


@dataclass(frozen=True)
class RequiredAdjacency:
    name: str
    zone_a: str
    zone_b: str

    def check(self, layout: LayoutData) -> List[Violation]:
        ids = tuple(sorted((self.zone_a, self.zone_b)))
        graph = adjacency_graph(layout)
        missing = [z for z in ids if z not in graph]
        if missing:
            return [Violation(self.name, ids, f"Zone(s) {', '.join(missing)} not found.")]
        if not graph.has_edge(self.zone_a, self.zone_b):
            return [Violation(self.name, ids, f"{self.zone_a} must be adjacent to {self.zone_b}.")]
        return []


@dataclass(frozen=True)
class ForbiddenColocation:
    name: str
    equipment_a: str
    equipment_b: str

    def check(self, layout: LayoutData) -> List[Violation]:
        out = []
        for zone in layout.zones:
            if self.equipment_a in zone.equipment and self.equipment_b in zone.equipment:
                out.append(Violation(self.name, (zone.id,), f"{self.equipment_a} and {self.equipment_b} share zone {zone.id}."))
        return out


@dataclass(frozen=True)
class EquipmentCapacity:
    name: str
    max_items: int
    category: Optional[ZoneCategory] = None

    def check(self, layout: LayoutData) -> List[Violation]:
        out = []
        for zone in layout.zones:
            if self.category is not None and zone.category != self.category:
                continue
            if len(zone.equipment) > self.max_items:
                out.append(Violation(
                    self.name, (zone.id,),
                    f"Zone {zone.id} holds {len(zone.equipment)} items, capacity is {self.max_items}.",
                ))
        return out


def _equipment_capacity(name: str, data: Dict[str, Any]) -> EquipmentCapacity:
    category = data.get("category")
    return EquipmentCapacity(name, int(data["maxItems"]), ZoneCategory(category) if category else None)


# kind -> builder(name, data)
CONSTRAINT_KINDS = {
    "area_ceiling": lambda name, data: AreaCeiling(name, float(data["maxArea"])),
    "required_adjacency": lambda name, data: RequiredAdjacency(name, str(data["zoneA"]), str(data["zoneB"])),
    "forbidden_colocation": lambda name, data: ForbiddenColocation(name, str(data["equipmentA"]), str(data["equipmentB"])),
    "equipment_capacity": _equipment_capacity,
}


def constraint_from_dict(data: Dict[str, Any]):
    """Build a constraint from its JSON form, e.g. {"kind": "area_ceiling", "maxArea": 70}."""
    kind = data.get("kind")
    build = CONSTRAINT_KINDS.get(kind) if isinstance(kind, str) else None
    if build is None:
        raise ValidationError(f"Unknown constraint kind '{kind}'. Must be one of {sorted(CONSTRAINT_KINDS)}")
    name = data.get("name") or kind
    try:
        return build(name, data)
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Constraint '{name}' is malformed: {e}")


# === Structural checks (always run, in this order) ===

def _check_unique_ids(layout: LayoutData) -> List[Violation]:
    counts = Counter(z.id for z in layout.zones)
    return [
        Violation("unique-zone-ids", (zid,), f"Zone id {zid} is used {n} times.")
        for zid, n in counts.items() if n > 1
    ]


def _check_non_negative_area(layout: LayoutData) -> List[Violation]:
    out = []
    for z in layout.zones:
        if not math.isfinite(z.area):
            out.append(Violation("non-negative-area", (z.id,), f"Zone {z.id} has non-finite area {z.area}."))
        elif z.area < 0:
            out.append(Violation("non-negative-area", (z.id,), f"Zone {z.id} has negative area {z.area}."))
    return out


def _check_area_budget(layout: LayoutData) -> List[Violation]:
    used = used_area(layout)
    if layout.total_area < 0:
        return [Violation("area-budget", (), f"Declared total area {layout.total_area} is negative.")]
    if used > layout.total_area:
        return [Violation(
            "area-budget", (),
            f"Zones occupy {used:.1f} {layout.unit}², more than the {layout.total_area:.1f} budget.",
        )]
    return []


def _check_adjacency_reference(layout: LayoutData) -> List[Violation]:
    ids = {z.id for z in layout.zones}
    out = []
    for zone in layout.zones:
        for other in zone.adjacent:
            if other not in ids:
                out.append(Violation("adjacency-reference", (zone.id,), f"Zone {zone.id} lists unknown neighbour {other}."))
            elif other == zone.id:
                out.append(Violation("adjacency-reference", (zone.id,), f"Zone {zone.id} lists itself as a neighbour."))
    return out


def _check_adjacency_symmetry(layout: LayoutData) -> List[Violation]:
    declared = {z.id: set(z.adjacent) for z in layout.zones}
    out = []
    for zone in layout.zones:
        for other in zone.adjacent:
            if other in declared and other != zone.id and zone.id not in declared[other]:
                out.append(Violation(
                    "adjacency-symmetry", tuple(sorted((zone.id, other))),
                    f"{zone.id} lists {other} as adjacent but not the other way round.",
                ))
    return out


def _check_equipment_reference(layout: LayoutData, catalog: Container[str]) -> List[Violation]:
    out = []
    for zone in layout.zones:
        for item in zone.equipment:
            if item not in catalog:
                out.append(Violation("equipment-reference", (zone.id,), f"Equipment {item} in zone {zone.id} is not in the catalog."))
    return out


def _sorted(violations: Iterable[Violation]) -> List[Violation]:
    # dedupe while keeping a deterministic order inside one constraint
    return sorted(set(violations), key=lambda v: (v.zone_ids, v.reason))


def validate(
    layout: LayoutData,
    constraints: Optional[Sequence[Any]] = None,
    catalog: Optional[Container[str]] = None,
) -> ValidationResult:
    """
    Check a layout against the structural invariants and the caller's constraints.

    Every check runs; nothing short-circuits. Violations come out grouped by
    check (structural ones first, then constraints in the order given) and
    sorted by zone id within a group.
    """
    groups: List[List[Violation]] = [
        _check_unique_ids(layout),
        _check_non_negative_area(layout),
        _check_area_budget(layout),
        _check_adjacency_reference(layout),
        _check_adjacency_symmetry(layout),
    ]
    if catalog is not None:
        groups.append(_check_equipment_reference(layout, catalog))
    for constraint in constraints or ():
        groups.append(constraint.check(layout))

    violations: List[Violation] = []
    for group in groups:
        violations.extend(_sorted(group))
    return ValidationResult(valid=not violations, violations=violations)
