"""
Shared test fixtures for imaging MS/MS planning tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from imaging_msms.contracts import (
    Feature,
    ImageProfile,
    ImagingMsMsConfig,
    MobilitySpectrum,
    Ms2ImagingMode,
    PlatePosition,
)
from imaging_msms.dataset import InMemoryPositionAccess
from imaging_msms.purity import PurityEvaluator


def spot_name(x, y):
    return f"R{x:02d}C{y:02d}"


@pytest.fixture
def position():
    """Factory for plate positions named after their grid index."""
    def _make(x, y):
        return PlatePosition(x, y, spot_name(x, y))
    return _make


@pytest.fixture
def base_config(tmp_path):
    """One energy, one MS/MS per feature, purity gate open."""
    return ImagingMsMsConfig(
        collision_energies=(20.0,),
        num_msms=1,
        min_msms_intensity=10.0,
        min_distance=1.0,
        min_chimerity_score=0.0,
        save_path_dir=str(tmp_path / "acquisition"),
        ms2_imaging_mode=Ms2ImagingMode.SINGLE,
    )


@pytest.fixture
def make_feature(position):
    """Build a Feature from ``[((x, y) | None, intensity), ...]``."""
    def _make(
        feature_id,
        profile,
        *,
        mz=500.0,
        mobility=1.0,
        mobility_range=(0.98, 1.02),
        area=None,
        height=None,
    ):
        positions = [None if xy is None else position(*xy) for xy, _ in profile]
        intensities = np.array([float(i) for _, i in profile])
        return Feature(
            feature_id=feature_id,
            mz=mz,
            mobility=mobility,
            mobility_range=mobility_range,
            height=float(intensities.max()) if height is None else float(height),
            area=float(intensities.sum()) if area is None else float(area),
            profile=ImageProfile(positions, intensities),
        )
    return _make


@pytest.fixture
def make_spectrum():
    """Spectrum with the precursor peak plus optional (mz, mobility, intensity) extras."""
    def _make(mz=500.0, mobility=1.0, intensity=100.0, extras=()):
        points = [(mobility, mz, intensity)] + [(mob, m, i) for m, mob, i in extras]
        arr = np.array(points, dtype=float)
        return MobilitySpectrum(mobility=arr[:, 0], mz=arr[:, 1], intensity=arr[:, 2])
    return _make


@pytest.fixture
def make_access(position):
    """Plate access over grid positions, optionally with spectra per (x, y)."""
    def _make(coords, spectra=None, total_positions=None):
        spectra = spectra or {}
        table = {
            position(*xy): spectra.get(xy, MobilitySpectrum.empty()) for xy in coords
        }
        return InMemoryPositionAccess(table, total_positions)
    return _make


class FixedPurity(PurityEvaluator):
    """Purity evaluator returning a constant score."""

    def __init__(self, config, value):
        super().__init__(config)
        self.value = value
        self.calls = 0

    def score(self, precursor_mz, isolation_window, mobility_range, spectrum):
        self.calls += 1
        return self.value


@pytest.fixture
def fixed_purity():
    def _make(config, value):
        return FixedPurity(config, value)
    return _make
