"""Isolation purity ("chimerity") gate for candidate spots."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple

import numpy as np

from imaging_msms.contracts import (
    ImagingMsMsConfig,
    MobilityRange,
    MobilitySpectrum,
    PlatePosition,
    Precursor,
)

logger = logging.getLogger(__name__)


class PositionAccess(Protocol):
    """Read-only, random access to the mobility-resolved spectrum of a plate position."""

    @property
    def number_of_positions(self) -> int:
        ...

    def spectrum_at(self, position: PlatePosition) -> Optional[MobilitySpectrum]:
        ...


def isolation_chimerity(
    precursor_mz: float,
    isolation_window: Tuple[float, float],
    mobility_range: MobilityRange,
    spectrum: Optional[MobilitySpectrum],
    mz_tolerance: float,
) -> float:
    """Fraction of isolated signal that belongs to the precursor.

    Only points inside ``mobility_range`` count. In every mobility scan the
    point closest to ``precursor_mz`` (within ``mz_tolerance``) is taken as
    the precursor signal; everything else in the isolation window is
    co-isolated. Returns 0.0 when nothing falls in the window.
    """
    if spectrum is None or len(spectrum.mz) == 0:
        return 0.0

    lo, hi = isolation_window
    mask = (
        (spectrum.mobility >= mobility_range[0])
        & (spectrum.mobility <= mobility_range[1])
        & (spectrum.mz >= lo)
        & (spectrum.mz <= hi)
    )
    total = float(spectrum.intensity[mask].sum())
    if total <= 0.0:
        return 0.0

    mz = spectrum.mz[mask]
    intensity = spectrum.intensity[mask]
    mobility = spectrum.mobility[mask]

    target = 0.0
    for scan_mobility in np.unique(mobility):
        in_scan = mobility == scan_mobility
        deltas = np.abs(mz[in_scan] - precursor_mz)
        best = int(np.argmin(deltas))
        if deltas[best] <= mz_tolerance:
            target += float(intensity[in_scan][best])

    return min(1.0, target / total)


class PurityEvaluator:
    """Hard purity gate: candidates scoring below the threshold are discarded."""

    def __init__(self, config: ImagingMsMsConfig) -> None:
        self.config = config
        self.min_score = config.min_chimerity_score

    def score(
        self,
        precursor_mz: float,
        isolation_window: Tuple[float, float],
        mobility_range: MobilityRange,
        spectrum: Optional[MobilitySpectrum],
    ) -> float:
        return isolation_chimerity(
            precursor_mz,
            isolation_window,
            mobility_range,
            spectrum,
            self.config.target_mz_tolerance,
        )

    def score_at(
        self,
        precursor: Precursor,
        position: PlatePosition,
        access: PositionAccess,
    ) -> float:
        spectrum = access.spectrum_at(position)
        return self.score(
            precursor.mz,
            self.config.isolation_window(precursor.mz),
            precursor.mobility_range,
            spectrum,
        )

    def passes(
        self,
        precursor: Precursor,
        position: PlatePosition,
        access: PositionAccess,
    ) -> bool:
        score = self.score_at(precursor, position, access)
        if score < self.min_score:
            logger.debug(
                "Purity %.3f < %.3f for %s at %s",
                score, self.min_score, precursor.feature_id, position.coordinates,
            )
            return False
        return True
