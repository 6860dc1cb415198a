"""Per-frame feature data models

Tracks are dense: every hop produces a frame, and frames without a usable
estimate carry a sentinel (zero pitch, held formants with ``voiced=False``)
so that frame index maps to time the same way for every track.
"""

from dataclasses import dataclass

import numpy as np


F1_RANGE = (90.0, 1500.0)
F2_RANGE = (500.0, 3500.0)
F3_MAX = 4500.0


def formants_plausible(f1: float, f2: float, f3: float) -> bool:
    """Check the ordering and range invariant of a voiced formant triple"""
    return (
        F1_RANGE[0] <= f1 <= F1_RANGE[1]
        and F2_RANGE[0] <= f2 <= F2_RANGE[1]
        and f3 <= F3_MAX
        and f1 < f2 < f3
    )


@dataclass(frozen=True)
class PitchFrame:
    """Pitch estimate for one analysis frame

    Attributes:
        time: Frame start in seconds
        pitch_hz: Fundamental frequency, 0 if unvoiced
        confidence: Normalized autocorrelation peak [0, 1]
    """
    time: float
    pitch_hz: float
    confidence: float

    def __post_init__(self):
        assert self.time >= 0, "Time must be non-negative"
        assert self.pitch_hz >= 0, "Pitch must be non-negative"
        assert 0.0 <= self.confidence <= 1.0, "Confidence must be in [0, 1]"

    @property
    def voiced(self) -> bool:
        return self.pitch_hz > 0


@dataclass(frozen=True)
class FormantFrame:
    """First three formants for one analysis frame

    Unvoiced frames hold the last valid formant values instead of zeros.

    Attributes:
        time: Frame start in seconds
        f1: First formant (Hz)
        f2: Second formant (Hz)
        f3: Third formant (Hz)
        voiced: Whether the values were measured in this frame
    """
    time: float
    f1: float
    f2: float
    f3: float
    voiced: bool

    def __post_init__(self):
        assert self.time >= 0, "Time must be non-negative"
        if self.voiced:
            assert formants_plausible(self.f1, self.f2, self.f3), (
                f"Voiced formants out of range: f1={self.f1}, f2={self.f2}, f3={self.f3}"
            )


@dataclass(frozen=True, eq=False)
class MFCCFrame:
    """Cepstral coefficients for one analysis frame"""
    time: float
    coeffs: np.ndarray

    def __post_init__(self):
        assert self.time >= 0, "Time must be non-negative"
        assert self.coeffs.ndim == 1, "Coefficients must be a 1-D vector"


@dataclass(frozen=True)
class IntensityFrame:
    time: float
    rms_intensity: float

    def __post_init__(self):
        assert self.rms_intensity >= 0, "RMS intensity must be non-negative"


@dataclass(frozen=True)
class ZCRFrame:
    time: float
    zcr: float


@dataclass(frozen=True)
class SpectralTiltFrame:
    """Low-band to high-band energy ratio for one frame"""
    time: float
    tilt: float


@dataclass(frozen=True)
class StressPeak:
    """A syllable-stress candidate in an intensity track

    Attributes:
        time: Peak time in seconds
        height: Intensity relative to the track maximum (0, 1]
        index: Frame index of the peak
    """
    time: float
    height: float
    index: int
