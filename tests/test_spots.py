"""Tests for spots.py: spot slots, registry and per-feature index."""
import pytest

from imaging_msms.contracts import (
    Ms2ImagingMode,
    PlatePosition,
    Precursor,
    SpotRegistryFullError,
)
from imaging_msms.spots import FeatureSpotIndex, Spot, SpotRegistry


def _precursor(feature_id):
    return Precursor(feature_id, 500.0, 1.0, (0.98, 1.02))


class TestSpot:
    def test_assign_requires_matching_energy(self, position):
        spot = Spot(position(0, 0), 20.0)
        assert not spot.try_assign(_precursor("a"), 40.0)
        assert spot.precursors == []
        assert spot.free_slots == 1

    def test_single_layout_holds_one_precursor(self, position):
        spot = Spot(position(0, 0), 20.0, Ms2ImagingMode.SINGLE)
        assert spot.try_assign(_precursor("a"), 20.0)
        assert not spot.try_assign(_precursor("b"), 20.0)
        assert [p.feature_id for p in spot.precursors] == ["a"]

    def test_quad_layout_holds_four_distinct_features(self, position):
        spot = Spot(position(0, 0), 20.0, Ms2ImagingMode.QUAD)
        for fid in "abcd":
            assert spot.try_assign(_precursor(fid), 20.0)
        assert not spot.try_assign(_precursor("e"), 20.0)
        assert spot.free_slots == 0

    def test_feature_takes_at_most_one_slot(self, position):
        spot = Spot(position(0, 0), 20.0, Ms2ImagingMode.QUAD)
        assert spot.try_assign(_precursor("a"), 20.0)
        assert not spot.try_assign(_precursor("a"), 20.0)
        assert spot.free_slots == 3
        assert spot.slot_of("a") == 0
        assert spot.has_feature("a")

    def test_slot_index_requires_assigned_feature(self, position):
        spot = Spot(position(0, 0), 20.0, Ms2ImagingMode.QUAD)
        spot.try_assign(_precursor("a"), 20.0)
        spot.try_assign(_precursor("b"), 20.0)
        assert spot.slot_index("b") == 1
        assert spot.slot_of("c") is None
        with pytest.raises(KeyError):
            spot.slot_index("c")

    def test_collision_energy_is_read_only(self, position):
        spot = Spot(position(0, 0), 20.0)
        with pytest.raises(AttributeError):
            spot.collision_energy = 40.0

    def test_occupied_slots_report_quadrants(self, position):
        spot = Spot(position(0, 0), 20.0, Ms2ImagingMode.QUAD)
        spot.try_assign(_precursor("a"), 20.0)
        spot.try_assign(_precursor("b"), 20.0)
        slots = list(spot.occupied_slots())
        assert [(i, q, p.feature_id) for i, q, p in slots] == [
            (0, (0, 0), "a"),
            (1, (1, 0), "b"),
        ]

    def test_spot_info_is_position(self, position):
        spot = Spot(position(3, 4), 20.0)
        assert spot.spot_info() == position(3, 4)
        assert spot.spot_info().spot_name == "R03C04"


class TestSpotRegistry:
    def test_first_writer_wins(self, position):
        registry = SpotRegistry(capacity=4)
        first = registry.create(position(1, 1), 20.0)
        second = registry.create(position(1, 1), 40.0)
        assert second is first
        assert second.collision_energy == 20.0
        assert len(registry) == 1

    def test_create_refused_when_full(self, position):
        registry = SpotRegistry(capacity=1)
        registry.create(position(0, 0), 20.0)
        assert registry.is_full()
        with pytest.raises(SpotRegistryFullError):
            registry.create(position(1, 0), 20.0)
        assert len(registry) == 1

    def test_lookup_and_membership(self, position):
        registry = SpotRegistry(capacity=2, layout=Ms2ImagingMode.QUAD)
        spot = registry.create(position(2, 0), 35.0)
        assert position(2, 0) in registry
        assert position(0, 2) not in registry
        assert registry.get(position(2, 0)) is spot
        assert registry.get(position(0, 2)) is None
        assert spot.layout is Ms2ImagingMode.QUAD
        assert list(registry) == [spot]

    def test_positions_compare_by_coordinates(self, position):
        registry = SpotRegistry(capacity=2)
        registry.create(position(2, 0), 35.0)
        renamed = PlatePosition(2, 0, "other-name")
        assert renamed in registry


class TestFeatureSpotIndex:
    def test_append_only_in_order(self, position):
        index = FeatureSpotIndex()
        a = Spot(position(0, 0), 20.0)
        b = Spot(position(5, 0), 20.0)
        index.add("f", a)
        index.add("f", b)
        assert index.spots_for("f") == [a, b]
        assert index.spots_for("unknown") == []

    def test_returned_list_is_a_copy(self, position):
        index = FeatureSpotIndex()
        index.add("f", Spot(position(0, 0), 20.0))
        index.spots_for("f").clear()
        assert len(index.spots_for("f")) == 1
