"""Tests for constraint validation."""
import pytest

from conftest import make_layout
from multiverse_lab.errors import ValidationError
from multiverse_lab.models.layout import ZoneCategory, ZoneData
from multiverse_lab.services.validator import (
    CONSTRAINT_KINDS,
    AreaCeiling,
    EquipmentCapacity,
    ForbiddenColocation,
    RequiredAdjacency,
    constraint_from_dict,
    validate,
)


class TestStructuralChecks:
    def test_clean_layout_is_valid(self, base_layout):
        result = validate(base_layout)
        assert result.valid is True
        assert result.violations == []

    def test_negative_area_is_a_violation_not_an_exception(self):
        layout = make_layout([ZoneData("a", "A", ZoneCategory.STORAGE, -5.0)])
        result = validate(layout)
        assert not result.valid
        assert [v.constraint for v in result.violations] == ["non-negative-area"]
        assert result.violations[0].zone_ids == ("a",)

    @pytest.mark.parametrize("area", [float("nan"), float("inf")])
    def test_non_finite_area_is_a_violation(self, area):
        layout = make_layout([ZoneData("a", "A", ZoneCategory.STORAGE, area)])
        result = validate(layout)
        assert not result.valid
        assert result.violations[0].constraint == "non-negative-area"
        assert "non-finite" in result.violations[0].reason

    def test_area_budget(self, base_layout):
        base_layout.total_area = 50.0
        result = validate(base_layout)
        assert [v.constraint for v in result.violations] == ["area-budget"]

    def test_duplicate_ids(self):
        layout = make_layout([
            ZoneData("a", "A", ZoneCategory.STORAGE, 5.0),
            ZoneData("a", "A again", ZoneCategory.STORAGE, 5.0),
        ])
        assert validate(layout).violations[0].constraint == "unique-zone-ids"

    def test_dangling_and_one_sided_adjacency(self):
        layout = make_layout([
            ZoneData("a", "A", ZoneCategory.WORKSPACE, 5.0, adjacent=["b", "ghost"]),
            ZoneData("b", "B", ZoneCategory.STORAGE, 5.0),
        ])
        names = [v.constraint for v in validate(layout).violations]
        assert names == ["adjacency-reference", "adjacency-symmetry"]

    def test_equipment_catalog(self, base_layout):
        result = validate(base_layout, catalog={"microscope"})
        assert [(v.constraint, v.zone_ids) for v in result.violations] == [("equipment-reference", ("office",))]

    def test_no_catalog_means_no_equipment_check(self, base_layout):
        assert validate(base_layout).valid


class TestConstraints:
    def test_area_ceiling_passes_and_fails(self, base_layout):
        assert validate(base_layout, [AreaCeiling("total area <= 70", 70)]).valid
        result = validate(base_layout, [AreaCeiling("total area <= 50", 50)])
        assert [v.constraint for v in result.violations] == ["total area <= 50"]

    def test_required_adjacency_missing_zone_is_reported(self, base_layout):
        result = validate(base_layout, [RequiredAdjacency("lab next to store", "lab", "store")])
        assert result.violations[0].zone_ids == ("lab", "store")
        assert "not found" in result.violations[0].reason

    def test_required_adjacency_satisfied(self, base_layout):
        assert validate(base_layout, [RequiredAdjacency("lab next to office", "office", "lab")]).valid

    def test_forbidden_colocation(self, base_layout):
        base_layout.zones[0].equipment = ["laser", "solvent"]
        result = validate(base_layout, [ForbiddenColocation("no laser near solvent", "laser", "solvent")])
        assert [v.zone_ids for v in result.violations] == [("lab",)]

    def test_equipment_capacity_by_category(self, base_layout):
        base_layout.zones[1].category = ZoneCategory.MEETING
        base_layout.zones[1].equipment = ["desk", "screen", "phone"]
        constraint = EquipmentCapacity("two items per meeting room", 2, ZoneCategory.MEETING)
        assert [v.zone_ids for v in validate(base_layout, [constraint]).violations] == [("office",)]


class TestOrdering:
    def _messy(self):
        return make_layout([
            ZoneData("z", "Z", ZoneCategory.WORKSPACE, 30.0, ["a", "b", "c"]),
            ZoneData("m", "M", ZoneCategory.WORKSPACE, -1.0, ["a", "b", "c"]),
            ZoneData("b", "B", ZoneCategory.WORKSPACE, 50.0, ["a", "b"]),
        ], total_area=40.0)

    def _constraints(self):
        return [
            AreaCeiling("ceiling", 20),
            EquipmentCapacity("capacity", 2),
            ForbiddenColocation("a-b", "a", "b"),
        ]

    def test_reports_everything(self):
        result = validate(self._messy(), self._constraints())
        names = [v.constraint for v in result.violations]
        assert names == ["non-negative-area", "area-budget", "ceiling", "capacity", "capacity", "a-b", "a-b", "a-b"]

    def test_zone_ids_sorted_within_constraint(self):
        result = validate(self._messy(), self._constraints())
        colocated = [v.zone_ids for v in result.violations if v.constraint == "a-b"]
        assert colocated == [("b",), ("m",), ("z",)]

    def test_permuting_constraints_gives_same_set(self):
        forward = validate(self._messy(), self._constraints())
        backward = validate(self._messy(), list(reversed(self._constraints())))
        assert set(forward.violations) == set(backward.violations)
        assert forward.valid == backward.valid


class TestConstraintFromDict:
    def test_known_kinds(self):
        assert constraint_from_dict({"kind": "area_ceiling", "name": "cap", "maxArea": 70}) == AreaCeiling("cap", 70.0)
        assert constraint_from_dict({"kind": "required_adjacency", "zoneA": "a", "zoneB": "b"}).name == "required_adjacency"
        capacity = constraint_from_dict({"kind": "equipment_capacity", "maxItems": 3, "category": "compute"})
        assert capacity.category == ZoneCategory.COMPUTE

    def test_every_listed_kind_builds(self):
        samples = {
            "area_ceiling": {"maxArea": 70},
            "required_adjacency": {"zoneA": "a", "zoneB": "b"},
            "forbidden_colocation": {"equipmentA": "laser", "equipmentB": "solvent"},
            "equipment_capacity": {"maxItems": 2},
        }
        assert set(samples) == set(CONSTRAINT_KINDS)
        for kind, fields in samples.items():
            assert constraint_from_dict({"kind": kind, **fields}).name == kind

    @pytest.mark.parametrize("kind", ["feng_shui", None, ["area_ceiling"]])
    def test_unknown_kind(self, kind):
        with pytest.raises(ValidationError):
            constraint_from_dict({"kind": kind})

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            constraint_from_dict({"kind": "area_ceiling"})
