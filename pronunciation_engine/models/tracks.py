"""Data models for per-recording feature tracks"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import numpy as np

from pronunciation_engine.models.frames import (
    PitchFrame,
    FormantFrame,
    MFCCFrame,
    IntensityFrame,
    ZCRFrame,
    SpectralTiltFrame,
    StressPeak,
)


@dataclass(frozen=True)
class PitchTrack:
    """Cleaned pitch contour of one recording

    Attributes:
        frames: One PitchFrame per hop
        summary: total_frames, voiced_frames, unvoiced_frames,
                 mean_pitch, min_pitch, max_pitch (0 when nothing is voiced)
    """
    frames: Tuple[PitchFrame, ...]
    summary: Dict[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.frames)

    @property
    def times(self) -> np.ndarray:
        return np.array([f.time for f in self.frames], dtype=np.float64)

    @property
    def values(self) -> np.ndarray:
        return np.array([f.pitch_hz for f in self.frames], dtype=np.float64)

    def voiced_values(self) -> np.ndarray:
        values = self.values
        return values[values > 0]


@dataclass(frozen=True)
class FormantTrack:
    """F1/F2/F3 trajectory of one recording

    Attributes:
        frames: One FormantFrame per hop
        summary: Voiced percentage, mean F1/F2/F3 and root-method usage counts
        frame_reasons: Frame index -> reason the frame fell back
                       ('unvoiced', 'invalid_lpc' or 'no_valid_formants')
    """
    frames: Tuple[FormantFrame, ...]
    summary: Dict[str, Any] = field(default_factory=dict)
    frame_reasons: Dict[int, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.frames)

    def voiced_frames(self) -> Tuple[FormantFrame, ...]:
        return tuple(f for f in self.frames if f.voiced)


@dataclass(frozen=True, eq=False)
class MFCCTrack:
    """Normalized cepstral track with its dynamics

    Attributes:
        frames: One MFCCFrame per hop, after liftering and mean normalization
        deltas: (n_frames, n_coeffs) regression deltas
        delta_deltas: (n_frames, n_coeffs) deltas of the deltas
        original_means: Per-coefficient means removed by normalization
                        (coefficient 0 is never normalized)
    """
    frames: Tuple[MFCCFrame, ...]
    deltas: np.ndarray
    delta_deltas: np.ndarray
    original_means: np.ndarray

    def __len__(self) -> int:
        return len(self.frames)

    @property
    def coefficients(self) -> np.ndarray:
        """Static coefficients as an (n_frames, n_coeffs) matrix"""
        if not self.frames:
            return np.zeros((0, len(self.original_means)))
        return np.vstack([f.coeffs for f in self.frames])


@dataclass(frozen=True, eq=False)
class FeatureSet:
    """Every feature track extracted from one recording

    Attributes:
        duration: Recording length in seconds
        sample_rate: Sample rate in Hz
        pitch: Cleaned pitch track
        formants: Formant track
        mfcc: MFCC track with deltas
        intensity: RMS intensity frames
        zcr: Zero-crossing rate frames
        spectral_tilt: Spectral tilt frames
        envelope: Short-window RMS envelope
        stress_peaks: Peaks detected in the intensity track
        spectrum: Mean spectral centroid, rolloff and flux
    """
    duration: float
    sample_rate: int
    pitch: PitchTrack
    formants: FormantTrack
    mfcc: MFCCTrack
    intensity: Tuple[IntensityFrame, ...]
    zcr: Tuple[ZCRFrame, ...]
    spectral_tilt: Tuple[SpectralTiltFrame, ...]
    envelope: np.ndarray
    stress_peaks: Tuple[StressPeak, ...]
    spectrum: Dict[str, float] = field(default_factory=dict)
