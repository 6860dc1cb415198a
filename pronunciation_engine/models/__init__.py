"""Data models"""

from pronunciation_engine.models.buffers import SampleBuffer, InvalidAudioError
from pronunciation_engine.models.frames import (
    PitchFrame,
    FormantFrame,
    MFCCFrame,
    IntensityFrame,
    ZCRFrame,
    SpectralTiltFrame,
    StressPeak,
    formants_plausible,
)
from pronunciation_engine.models.tracks import (
    PitchTrack,
    FormantTrack,
    MFCCTrack,
    FeatureSet,
)
from pronunciation_engine.models.enums import RootMethod, FrameFallback, StepPattern
from pronunciation_engine.models.results import (
    DTWResult,
    DimensionScore,
    StressComparison,
    ComparisonResult,
)

__all__ = [
    # Input
    "SampleBuffer",
    "InvalidAudioError",
    # Frames
    "PitchFrame",
    "FormantFrame",
    "MFCCFrame",
    "IntensityFrame",
    "ZCRFrame",
    "SpectralTiltFrame",
    "StressPeak",
    "formants_plausible",
    # Tracks
    "PitchTrack",
    "FormantTrack",
    "MFCCTrack",
    "FeatureSet",
    # Enums
    "RootMethod",
    "FrameFallback",
    "StepPattern",
    # Results
    "DTWResult",
    "DimensionScore",
    "StressComparison",
    "ComparisonResult",
]
