"""Public API for imaging MS/MS spot planning."""

from imaging_msms.contracts import (
    Feature,
    ImageProfile,
    ImagingMsMsConfig,
    ImagingMsMsRunResult,
    MobilitySpectrum,
    Ms2ImagingMode,
    PlatePosition,
)
from imaging_msms.engine import AssignmentEngine
from imaging_msms.pipeline import run_imaging_msms

__all__ = [
    "AssignmentEngine",
    "Feature",
    "ImageProfile",
    "ImagingMsMsConfig",
    "ImagingMsMsRunResult",
    "MobilitySpectrum",
    "Ms2ImagingMode",
    "PlatePosition",
    "run_imaging_msms",
]
