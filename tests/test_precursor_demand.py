"""Tests for precursor.py: quota tracking and mobility range clamping."""
import pytest

from imaging_msms.contracts import Precursor
from imaging_msms.precursor import (
    PrecursorDemand,
    adjust_mobility_range,
    build_precursor_demand,
)


def _demand(energies=(20.0, 40.0), num_msms=2):
    precursor = Precursor("f1", 500.0, 1.0, (0.98, 1.02))
    return PrecursorDemand(precursor, energies, num_msms)


class TestPrecursorDemand:
    def test_initial_remaining_is_num_msms_per_energy(self):
        demand = _demand()
        assert demand.remaining(20.0) == 2
        assert demand.remaining(40.0) == 2
        assert demand.total_assigned == 0
        assert not demand.is_satisfied()

    def test_record_decrements_only_that_energy(self):
        demand = _demand()
        assert demand.record(20.0)
        assert demand.remaining(20.0) == 1
        assert demand.remaining(40.0) == 2
        assert demand.assigned(20.0) == 1

    def test_record_on_exhausted_energy_is_noop(self):
        demand = _demand(num_msms=1)
        assert demand.record(20.0)
        assert not demand.record(20.0)
        assert demand.assigned(20.0) == 1

    def test_energy_outside_ladder_is_rejected(self):
        demand = _demand()
        assert demand.remaining(99.0) == 0
        assert not demand.record(99.0)
        assert demand.total_assigned == 0

    def test_lowest_assigned_tracks_weakest_energy(self):
        demand = _demand(num_msms=2)
        demand.record(20.0)
        demand.record(20.0)
        assert demand.lowest_assigned_across_energies() == 0
        demand.record(40.0)
        assert demand.lowest_assigned_across_energies() == 1

    def test_satisfied_once_every_energy_is_full(self):
        demand = _demand(num_msms=1)
        demand.record(20.0)
        assert not demand.is_satisfied()
        demand.record(40.0)
        assert demand.is_satisfied()
        assert demand.total_assigned == 2


class TestAdjustMobilityRange:
    def test_range_within_bounds_is_kept(self):
        assert adjust_mobility_range(1.0, (0.95, 1.05), 0.05, 0.2) == (0.95, 1.05)

    def test_narrow_range_is_widened_around_mobility(self):
        lo, hi = adjust_mobility_range(1.0, (0.999, 1.001), 0.02, 0.2)
        assert lo == pytest.approx(0.99)
        assert hi == pytest.approx(1.01)

    def test_wide_range_is_narrowed_around_mobility(self):
        lo, hi = adjust_mobility_range(1.1, (0.5, 1.5), 0.02, 0.2)
        assert lo == pytest.approx(1.0)
        assert hi == pytest.approx(1.2)


def test_build_precursor_demand_uses_config(make_feature, base_config):
    feature = make_feature("f9", [((0, 0), 50.0)], mz=612.3, mobility_range=(1.0, 1.0))
    demand = build_precursor_demand(feature, base_config)

    assert demand.feature_id == "f9"
    assert demand.precursor.mz == pytest.approx(612.3)
    lo, hi = demand.precursor.mobility_range
    assert hi - lo == pytest.approx(base_config.min_mobility_width)
    assert demand.collision_energies == (20.0,)
    assert demand.num_msms == 1
